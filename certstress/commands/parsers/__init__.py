from . import run

ENTRY_PARSERS = [
    run,
]
