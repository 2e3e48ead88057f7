"""Allow ``python -m timevault``."""

from timevault.cli.main import main

main()
