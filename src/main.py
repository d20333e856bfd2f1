import uvicorn

from .core import app, settings
from .todo.views import router as todo_router
from .users.views import router as users_router

app.include_router(users_router)
app.include_router(todo_router)


@app.get("/api/health", tags=["health"])
def health() -> dict:
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("src.main:app", host=settings.HOST, port=settings.PORT)
