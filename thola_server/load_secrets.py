import os
from dotenv import load_dotenv

load_dotenv()

db_backend = os.getenv("DB_BACKEND", "postgres")
user = os.getenv("DB_USER")
password = os.getenv("DB_PASSWORD")
host = os.getenv("DB_HOST")
port = os.getenv("DB_PORT")
db_name = os.getenv("DB_NAME")

redis_host = os.getenv("REDIS_HOST", "redis")
redis_port = int(os.getenv("REDIS_PORT", "6379"))

game_channel = os.getenv("GAME_CHANNEL", "game:main")
game_session_id = os.getenv("GAME_SESSION_ID", "main-game-session")
settle_delay_seconds = float(os.getenv("SETTLE_DELAY_SECONDS", "2.0"))
max_players = int(os.getenv("MAX_PLAYERS", "8"))
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
