from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

try:
    version = get_version("certstress-ad")
except PackageNotFoundError:
    version = "?"
    print(
        "Cannot determine certstress version. "
        'If running from source you should at least run "pip install -e ."'
    )

BANNER = "certstress v{} - AD CS load testing\n".format(version)
