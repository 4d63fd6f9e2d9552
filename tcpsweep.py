#!/usr/bin/env python3
"""
tcpsweep - TCP connect scanner

Keeps a fixed pool of non-blocking connect attempts in flight over a host
range and port range, and reports every address:port that accepts.

Usage:
    python tcpsweep.py -h 192.168.0.0/24 -p 1-1024
    python tcpsweep.py -h 10.0.0.1 -p 22 -o open.log -s 512 -t 2 -v
"""
import sys

from tcpsweep.main import main

if __name__ == "__main__":
    sys.exit(main())
