from contextlib import asynccontextmanager
import asyncio
import logging

from fastapi import FastAPI
import uvicorn

from azure_blob_upload.configs.config import configure_logging, get_config
from azure_blob_upload.deps import get_engine
from azure_blob_upload.health import DependencyType, register_dependency
from azure_blob_upload.routes import files, health
from azure_blob_upload.storage.azure import CONTAINER_DEPENDENCY

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    register_dependency(CONTAINER_DEPENDENCY, DependencyType.STORAGE, {
        "description": "Azure Blob Storage container for uploads"
    })

    # Built inside the running loop so the container check starts right away;
    # uploads arriving before it finishes are queued by the engine.
    engine = get_engine()
    logger.info(f"Storage engine created for container {engine.container_name}")

    yield

    await engine.close()
    logger.info("Storage engine closed")


app = FastAPI(
    title="Azure Blob Upload API",
    description="Multipart uploads streamed straight into Azure Blob Storage",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(files.router)


async def main():
    config = get_config()
    configure_logging(config.log_level)
    logger.info("Starting Azure Blob Upload API...")

    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.fastapi_host,
            port=config.fastapi_port,
            log_level=config.log_level.value,
            access_log=True,
        )
    )
    try:
        await server.serve()
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error(f"Server error: {str(e)}")
        raise


if __name__ == "__main__":
    asyncio.run(main())
