import logging
import os
import sys

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("entrypoint")


def main() -> None:
  """Launch the API server, or a queue worker when called with ``worker``."""
  role = sys.argv[1] if len(sys.argv) > 1 else "api"
  # exec so signals (SIGTERM, etc.) reach the server or worker directly.
  if role == "worker":
    logger.info("Starting queue worker...")
    os.execvp(sys.executable, [sys.executable, "-m", "litreview.worker", *sys.argv[2:]])

  port = os.getenv("PORT", "8002")
  logger.info("Starting API on port %s (run scripts/init_db.py before first start)...", port)
  os.execvp("uvicorn", ["uvicorn", "litreview.main:app", "--host", "0.0.0.0", "--port", port, "--no-server-header"])


if __name__ == "__main__":
  main()
