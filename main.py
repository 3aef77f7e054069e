"""
Ascend Academy entry point
"""
import sys

from loguru import logger

from app.config import configure_logging, get_settings


def main():
    """Main"""
    import argparse

    parser = argparse.ArgumentParser(description="Ascend Academy server")
    parser.add_argument(
        "--mode",
        choices=["serve", "stats"],
        default="serve",
        help="run mode"
    )
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--reload",
        action="store_true",
        help="auto reload (development)"
    )

    args = parser.parse_args()
    configure_logging()

    if args.mode == "serve":
        import uvicorn

        uvicorn.run(
            "app.server:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=get_settings().LOG_LEVEL.lower()
        )

    elif args.mode == "stats":
        # Table row counts
        if not get_settings().supabase_configured:
            logger.error("SUPABASE_URL / key not set")
            sys.exit(1)

        from database.supabase_client import get_supabase_client, row_counts

        stats = row_counts(get_supabase_client())
        print("\n=== Database stats ===")
        for table, count in stats.items():
            print(f"  {table}: {count}")


if __name__ == "__main__":
    main()
