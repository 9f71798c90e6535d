import logging
import os

from dotenv import load_dotenv

load_dotenv()


DATABASE_URL = os.getenv("SEAT_ALLOCATOR_DATABASE_URL", "sqlite:///./seat_allocator.db")

# rosters above this size are handed to a background task
ASYNC_THRESHOLD = int(os.getenv("SEAT_ALLOCATOR_ASYNC_THRESHOLD", "500"))

# how far soft mode looks ahead in the queue for a conflict-free student
SOFT_LOOKAHEAD = int(os.getenv("SEAT_ALLOCATOR_SOFT_LOOKAHEAD", "8"))

STUDENTS_FILE = os.getenv("SEAT_ALLOCATOR_STUDENTS_FILE", "students.xlsx")

LOG_LEVEL = os.getenv("SEAT_ALLOCATOR_LOG_LEVEL", "INFO")


def configure_logging(level=None):
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
