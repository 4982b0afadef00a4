import os
from decimal import Decimal
from urllib.parse import quote_plus
from dotenv import load_dotenv

# Load .env before reading settings
load_dotenv()


class Settings:
    # API metadata
    API_TITLE = "NSL Sugars Coupon API"
    API_VERSION = "1.0.0"
    DESCRIPTION = "Season roster upload, sugar collection and sales statement service"

    # Default environment (test, prod, local)
    ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Explicit SQLAlchemy URL wins over the DB_* parts below
    DATABASE_URL = os.getenv("DATABASE_URL")

    DB_HOST = os.getenv("DB_HOST")
    DB_PORT = int(os.getenv("DB_PORT", "3306"))
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_DATABASE = os.getenv("DB_DATABASE")

    SQLITE_PATH = os.getenv("SQLITE_PATH", "./sugar_coupons.db")

    # Business defaults
    DEFAULT_SUGAR_RATE = Decimal(os.getenv("DEFAULT_SUGAR_RATE", "31.5"))
    ROSTER_BATCH_SIZE = int(os.getenv("ROSTER_BATCH_SIZE", "800"))
    BACKUP_DIR = os.getenv("BACKUP_DIR", "./backups")

    # Report title rows
    REPORT_COMPANY_TITLE = os.getenv("REPORT_COMPANY_TITLE", "NSL SUGARS LTD., KOPPA UNIT")
    REPORT_STATEMENT_TITLE = os.getenv("REPORT_STATEMENT_TITLE", "Ryot Sugar Coupon Statement for Crushing Season")
    REPORT_SEASON_LABEL = os.getenv("REPORT_SEASON_LABEL", "")

    def get_db_config(self):
        """MySQL connection parts, used only when DB_HOST is configured"""
        return {
            "host": self.DB_HOST,
            "port": self.DB_PORT,
            "user": self.DB_USER,
            "password": self.DB_PASSWORD,
            "database": self.DB_DATABASE
        }

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST:
            db_config = self.get_db_config()
            return (
                f"mysql+pymysql://{db_config['user']}:{quote_plus(db_config['password'])}@"
                f"{db_config['host']}:{db_config['port']}/{db_config['database']}"
                "?charset=utf8mb4"
            )
        return f"sqlite:///{self.SQLITE_PATH}"

    @property
    def report_title_lines(self):
        statement = self.REPORT_STATEMENT_TITLE
        if self.REPORT_SEASON_LABEL:
            statement = f"{statement} -{self.REPORT_SEASON_LABEL}"
        return [self.REPORT_COMPANY_TITLE, statement]


# Shared settings instance
settings = Settings()
