import uvicorn
import argparse

if __name__ == "__main__":
    # Command line options
    parser = argparse.ArgumentParser(description="Start the NSL Sugars coupon API service")
    parser.add_argument("--host", type=str, default="0.0.0.0", help="Host address to bind")
    parser.add_argument("--port", type=int, default=3000, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Auto-reload for development")
    args = parser.parse_args()

    uvicorn.run(
        "sugar_coupons.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload
    )
