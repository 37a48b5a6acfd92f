# Copyright (c) Syntropy Systems
"""Allow ``python -m speedvitals``."""

from speedvitals.cli.main import app

app()
