from importlib.metadata import PackageNotFoundError, version

try:
    VERSION = version("threadlinking")
except PackageNotFoundError:
    # running from a source checkout without an install
    VERSION = "0.0.0"
