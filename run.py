import uvicorn
import argparse
from seva_portal.main import app

if __name__ == "__main__":
    # Parse command line arguments
    parser = argparse.ArgumentParser(description="Start the citizen services portal API")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host address to bind")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Auto reload in development")
    args = parser.parse_args()

    # Start the server
    uvicorn.run(
        "seva_portal.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )
