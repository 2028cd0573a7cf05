import logging
import sys
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Configure logging
def setup_logger(name: str = "tutor_portal", logs_dir: str = "logs"):
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Handlers are attached once per logger name
    if logger.handlers:
        return logger

    # Create logs directory if it doesn't exist
    Path(logs_dir).mkdir(exist_ok=True)

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(levelname)s: %(message)s'
    )

    # Create handlers
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(logging.INFO)

    # Create file handler
    file_handler = logging.FileHandler(
        f"{logs_dir}/portal_{datetime.now().strftime('%Y%m%d')}.log"
    )
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(logging.INFO)

    # Add handlers to logger
    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger

class AuthAuditLogger:
    """Writes one JSON line per authentication event (login, logout, expired session...)."""

    def __init__(self, logs_dir: str = "logs"):
        self.logger = logging.getLogger('auth_audit')
        self.logger.setLevel(logging.INFO)
        if not self.logger.handlers:
            Path(logs_dir).mkdir(exist_ok=True)
            handler = logging.FileHandler(f'{logs_dir}/auth_audit.log')
            handler.setFormatter(logging.Formatter('%(asctime)s - %(message)s'))
            self.logger.addHandler(handler)

    def log_auth_event(self, event_type: str, user_id: Optional[str], details: dict):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "user_id": user_id,
            "details": details
        }
        self.logger.info(json.dumps(log_entry))

# Use single logger instance across all files
logger = setup_logger()
