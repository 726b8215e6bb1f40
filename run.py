#!/usr/bin/env python3
"""Convenience runner for the territory conquest engine.

Usage:
    python run.py serve --seed map.json
    python run.py claim activity.gpx --user alice --seed map.json
"""
import logging
import sys

from territory_conquest.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
