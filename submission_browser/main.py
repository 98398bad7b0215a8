"""
Main entry point for the submission browser.
"""
import sys
import json
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv
from loguru import logger

from .clients.browser_api import BrowserAPIClient, download_batch
from .clients.s3_manager import S3Manager
from .models.config import BrowserConfig
from .services.database_manager import DatabaseManager
from .services.download_manager import DownloadManager
from .services.sync_service import SyncService
from .services.telemetry import build_report


def setup_logging():
    """Configure logging for the submission browser."""
    # Remove default logger
    logger.remove()

    # Add console logger with appropriate format
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="INFO"
    )

    # Add file logger for debugging
    log_dir = Path("logs")
    log_dir.mkdir(exist_ok=True)

    logger.add(
        "logs/submission_browser.log",
        rotation="10 MB",
        retention="7 days",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG"
    )


def build_services(config: BrowserConfig) -> Tuple[SyncService, DownloadManager]:
    """Wire the object store, cache and services from configuration."""
    s3_manager = S3Manager(config.s3)
    database_manager = DatabaseManager(config.database_path)
    sync_service = SyncService(config, s3_manager, database_manager)
    download_manager = DownloadManager(s3_manager, database_manager, config.downloads_dir)
    return sync_service, download_manager


def run_partition_sync(year: str, month: str, force: bool):
    """Sync a single year/month partition."""
    logger.info(f"Syncing {year}/{month} (force={force})")

    config = BrowserConfig.from_env()
    sync_service, _ = build_services(config)

    result = sync_service.sync_partition(year, month, force=force)
    if result.skipped:
        logger.info(f"{year}/{month} was synced at {result.last_synced_at} - skipped (use --force to resync)")
    else:
        logger.info(f"Sync Results: {json.dumps(result.to_dict(), indent=2)}")
    return result


def run_auto_sync():
    """Sync every partition older than the auto-sync freshness window."""
    logger.info("Starting auto-sync")

    config = BrowserConfig.from_env()
    sync_service, _ = build_services(config)

    report = sync_service.run_auto_sync()
    logger.info(f"Auto-sync Results: {json.dumps(report.to_dict(), indent=2)}")
    return report


def run_daemon_mode():
    """Run auto-sync periodically."""
    logger.info("Starting Submission Browser - Daemon Mode")

    config = BrowserConfig.from_env()
    logger.info(f"Bucket: {config.s3.bucket}, sync interval: {config.sync_interval} seconds")
    sync_service, _ = build_services(config)

    next_sync_time = datetime.now()
    while True:
        try:
            if datetime.now() >= next_sync_time:
                logger.info("Running scheduled auto-sync")
                report = sync_service.run_auto_sync()
                logger.info(f"Auto-sync completed - Synced: {len(report.synced)}, "
                            f"Skipped: {len(report.skipped)}, Failed: {len(report.failed)}")

                next_sync_time = datetime.now() + timedelta(seconds=config.sync_interval)
                logger.info(f"Next sync scheduled for: {next_sync_time}")

            # Sleep for a short interval to avoid busy waiting
            time.sleep(10)

        except KeyboardInterrupt:
            logger.info("Received interrupt signal, shutting down gracefully")
            break
        except Exception as e:
            logger.error(f"Error during periodic sync: {str(e)}")
            next_sync_time = datetime.now() + timedelta(seconds=config.sync_interval)
            logger.info(f"Next sync scheduled for: {next_sync_time} (after error)")


def run_server():
    """Serve the HTTP API with uvicorn."""
    import uvicorn
    from .api.server import create_app

    config = BrowserConfig.from_env()
    sync_service, download_manager = build_services(config)
    app = create_app(sync_service, download_manager, config)

    logger.info(f"Submission Browser API running on http://{config.api_host}:{config.api_port}")
    uvicorn.run(app, host=config.api_host, port=config.api_port, log_level="info")


def show_status(year: str, month: str):
    config = BrowserConfig.from_env()
    database_manager = DatabaseManager(config.database_path)
    status = database_manager.get_sync_status(year, month)
    logger.info(f"Sync Status: {json.dumps(status.to_dict(), indent=2)}")


def show_stats():
    config = BrowserConfig.from_env()
    database_manager = DatabaseManager(config.database_path)
    report = build_report(database_manager)
    logger.info(f"Cache Statistics: {json.dumps(report, indent=2)}")


def run_download_batch(year: str, month: str, limit: int):
    """Download pending events through a running server."""
    config = BrowserConfig.from_env()
    client = BrowserAPIClient(config.browser_api_url)

    logger.info(f"Ensuring {year}/{month} is synced before downloading")
    client.trigger_sync(year, month, wait=False)
    client.wait_for_sync(year, month)

    results = download_batch(client, year, month, limit)
    logger.info(f"Batch download complete - Downloaded: {len(results['downloaded'])}, "
                f"Failed: {len(results['failed'])}")
    return results


def print_help():
    """Print help information for the CLI."""
    help_text = """
Submission Browser - Command Line Interface

USAGE:
    python -m submission_browser.main [COMMAND] [OPTIONS]

COMMANDS:
    sync YEAR MONTH [--force]        Sync one year/month partition into the cache
    auto-sync                        Sync every partition not synced within AUTO_SYNC_FRESHNESS_HOURS
    status YEAR MONTH                Show sync status of a partition
    stats                            Show cache statistics
    daemon                           Run auto-sync every SYNC_INTERVAL seconds
    serve                            Start the HTTP API (default)
    download-batch YEAR MONTH [N]    Download up to N (default 100) events via a running server
    help                             Show this help message

EXAMPLES:
    python -m submission_browser.main sync 2024 12
    python -m submission_browser.main sync 2024 12 --force
    python -m submission_browser.main download-batch 2025 11 50

ENVIRONMENT VARIABLES:
    SUBMISSIONS_S3_BUCKET          Bucket name (default: ml-training-data-vision)
    SUBMISSIONS_S3_BASE_PREFIX     Prefix holding year/month partitions
    SUBMISSIONS_S3_REGION          AWS region (default: us-east-1)
    SUBMISSIONS_S3_ENDPOINT        Custom S3 endpoint (optional)
    SUBMISSIONS_S3_ACCESS_KEY      Access key (optional, boto3 credential chain otherwise)
    SUBMISSIONS_S3_SECRET_KEY      Secret key
    SUBMISSIONS_S3_SESSION_TOKEN   Session token
    DATABASE_PATH                  SQLite cache path (default: data/submissions.db)
    DOWNLOADS_DIR                  Download directory (default: downloads)
    SYNC_FRESHNESS_HOURS           Interactive resync threshold (default: 1)
    AUTO_SYNC_FRESHNESS_HOURS      Auto-sync resync threshold (default: 24)
    SYNC_INTERVAL                  Daemon interval in seconds (default: 3600)
    API_HOST / API_PORT            HTTP API bind address (default: 0.0.0.0:3001)
    FRONTEND_ORIGIN                Allowed CORS origin (default: http://localhost:5173)
    BROWSER_API_URL                Server URL used by download-batch

Variables are also read from a .env file in the working directory.
"""
    print(help_text)


def main():
    """Main entry point with command line argument handling."""
    load_dotenv()
    setup_logging()

    args = sys.argv[1:]
    if not args:
        logger.info("No command specified - starting the HTTP API")
        run_server()
        return

    command = args[0].lower()
    params = [a for a in args[1:] if not a.startswith('--')]
    flags = {a for a in args[1:] if a.startswith('--')}

    try:
        if command in ["help", "--help", "-h"]:
            print_help()
        elif command == "sync" and len(params) == 2:
            run_partition_sync(params[0], params[1], force="--force" in flags)
        elif command == "auto-sync":
            report = run_auto_sync()
            if report.failed:
                sys.exit(1)
        elif command == "status" and len(params) == 2:
            show_status(params[0], params[1])
        elif command == "stats":
            show_stats()
        elif command == "daemon":
            run_daemon_mode()
        elif command == "serve":
            run_server()
        elif command == "download-batch" and len(params) in (2, 3):
            limit = int(params[2]) if len(params) == 3 else 100
            run_download_batch(params[0], params[1], limit)
        else:
            logger.error(f"Unknown command or wrong arguments: {' '.join(args)}")
            logger.error("Use 'help' to see available commands")
            print_help()
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Command failed: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
