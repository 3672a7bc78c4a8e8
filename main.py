#!/usr/bin/env python3
"""
RGW Usage Exporter - Main entry point.

Usage:
    python main.py serve --endpoint http://rgw:8080
    python main.py snapshot --endpoint http://rgw:8080 --store eu-west
"""

import sys

from rgw_usage_exporter.cli import main

if __name__ == '__main__':
    sys.exit(main())
