# Copyright (c) Syntropy Systems
"""lmevals CLI."""
