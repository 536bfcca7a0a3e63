#!/usr/bin/env python3
"""Start the RoboSync status server."""
import uvicorn


def main() -> None:
    uvicorn.run(
        "robosync.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
