"""
开发服务器入口：python -m cafeteria
"""

import uvicorn

from .app import app
from .config.settings import settings

if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8000, log_level=settings.log_level.lower())
