#!/usr/bin/env python3
"""
CartLedger Runner
=================

Runs the CartLedger API with uvicorn.

Usage:
    python run_app.py                    # Development mode with auto-reload
    python run_app.py --mode prod        # Production mode
    python run_app.py --port 8001        # Custom port
    python run_app.py --host 127.0.0.1   # Custom host
"""

import argparse
import os
import sys

def check_environment():
    """Report which configuration the app will start with"""
    if os.path.exists(".env"):
        print(".env file found")
    else:
        print(".env file not found, using defaults")

def run_app(host="0.0.0.0", port=8000, reload=True):
    """Run the FastAPI application"""
    print(f"\nStarting CartLedger on {host}:{port}")
    print(f"API Docs: http://{host}:{port}/docs")
    print("\n" + "="*50)

    import uvicorn
    uvicorn.run(
        "cartledger.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )

def main():
    parser = argparse.ArgumentParser(
        description="CartLedger Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_app.py                      # Development server on port 8000
  python run_app.py --mode prod          # No auto-reload
  python run_app.py --port 8001          # Custom port
        """
    )

    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="Server mode (default: dev)"
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind to (default: 8000)"
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable auto-reload"
    )

    args = parser.parse_args()

    check_environment()

    reload = not args.no_reload and args.mode != "prod"
    run_app(args.host, args.port, reload)
    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
