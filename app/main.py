from fastapi import FastAPI
from app.core.database import engine, Base
from app.core.errors import register_exception_handlers
from app.core.logging_config import configure_logging
from app.routers import health, auth, tasks, hours, weeks

configure_logging()

# Init DB
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Serve Board API",
    version="0.1.0"
)

register_exception_handlers(app)

# Routes
app.include_router(health.router, prefix="/health")
app.include_router(auth.router)
app.include_router(tasks.router)
app.include_router(hours.router)
app.include_router(weeks.router)
