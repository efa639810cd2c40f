#!/usr/bin/env python3
"""
CLI script for running the checkout funnel against one site.

Usage:
    python run_funnel.py <site> <search term...>
    python run_funnel.py lenskart [signin|signup] <search term...>
    python run_funnel.py swiggy ice cream --headless
"""

import sys

from funnel.cli import main

if __name__ == "__main__":
    sys.exit(main())
