import uvicorn

from chatty.config import Config


if __name__ == "__main__":
    uvicorn.run(
        "chatty.main:app",
        host=Config.HOST,
        port=Config.PORT,
        reload=Config.DEBUG,
        log_level="info" if Config.DEBUG else "warning",
    )
