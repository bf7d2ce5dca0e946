from os import getenv

class Settings:
    DATABASE_URL = getenv("DATABASE_URL", "postgresql+psycopg://serveboard:serveboard@db:5432/serveboard")
    JWT_SECRET = getenv("JWT_SECRET", "dev-secret-change-in-prod")
    JWT_EXPIRE_MIN = int(getenv("JWT_EXPIRE_MIN", "15"))  # expire au bout de 15 minutes
    JWT_REFRESH_EXPIRE_MIN = int(getenv("JWT_REFRESH_EXPIRE_MIN", "43200"))  # expire au bout d'1 mois
    HOURS_ROUNDING_STEP = float(getenv("HOURS_ROUNDING_STEP", "0.25"))  # arrondi des heures créditées
    LOG_LEVEL = getenv("LOG_LEVEL", "INFO")

settings = Settings()
