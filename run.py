#!/usr/bin/env python3
"""
Run script for the User Service API.
Loads .env, then launches the FastAPI app with uvicorn.
"""
import os
import sys
import traceback

from dotenv import load_dotenv

# Environment must be in place before the service modules read it
load_dotenv()

import uvicorn

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", 8000))
    try:
        print("Starting User Service API server...")
        print(f"Access the API at http://{host}:{port}")
        print(f"API documentation at http://{host}:{port}/docs")

        uvicorn.run(
            "user_service.main:app",
            host=host,
            port=port,
            reload=os.getenv("RELOAD", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "info").lower()
        )
    except Exception as e:
        print(f"Error starting server: {e}")
        traceback.print_exc()
        sys.exit(1)
