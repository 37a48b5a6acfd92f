# Copyright (c) Syntropy Systems
"""speedvitals command-line interface."""
