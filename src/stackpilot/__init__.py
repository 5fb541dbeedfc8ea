"""
stackpilot - deploy and inspect AWS CloudFormation stacks through change sets.
"""

__version__ = "0.1.0"


def get_version() -> str:
    """Get the installed stackpilot version from package metadata."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("stackpilot")
    except PackageNotFoundError:
        return __version__
