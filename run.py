#!/usr/bin/env python3
"""
s3proto command-line runner

Run this script to talk to an S3-compatible endpoint without installing
the package.

Usage:
    python run.py buckets                          # List buckets
    python run.py -c custom.json ls my-bucket      # Use custom config
    python run.py put my-bucket big.bin ./big.bin  # Multipart upload
    python run.py -v listen my-bucket              # Stream notifications
"""

import sys
from s3proto.cli import main

if __name__ == "__main__":
    sys.exit(main())
