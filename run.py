#!/usr/bin/env python3
"""
Run script for the Nutrilog WhatsApp backend
"""
import uvicorn

from nutrilog.config.settings import settings
from nutrilog.main import app

if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port, reload=settings.debug)
