"""API server entry point for python -m storyweaver.api"""
import uvicorn
from storyweaver.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "storyweaver.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=False,
    )
