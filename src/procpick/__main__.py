"""Run procpick with ``python -m procpick``."""

from procpick.app import main

main()
