#!/usr/bin/env python3
"""
Run the card price proxy.
"""

import asyncio
import sys

from priceproxy.app import run_async_app

if __name__ == "__main__":
    try:
        asyncio.run(run_async_app())
    except KeyboardInterrupt:
        print("Shutting down...")
    except Exception as e:
        print(f"Error during startup: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
