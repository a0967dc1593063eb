"""
devboot - development container bootstrap.

Runs at container start to give the container working AWS credentials and
an overlay network connection, and provides the one-off helpers that
prepare the AWS side (certificate chain, bootstrap stack).

Package layout (src/devboot/):
  core/       - environment detection, credentials, connector, config
  cli/        - Click CLI entry point
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
