"""
FastAPI 入口
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from logs import setup_logger, metrics
from services.copilot import Copilot
from storage.settings_store import SettingsStore
from gateway.ws_voice import handle_voice_websocket
from api_routes import router

logger = setup_logger(__name__)


def create_app(copilot: Optional[Copilot] = None) -> FastAPI:
    """
    创建应用

    Args:
        copilot: 预先构建的Copilot（测试用），默认从本地设置与环境变量构建
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info("🚀 启动应用...")
        if getattr(app.state, "copilot", None) is None:
            app.state.copilot = Copilot(store=SettingsStore())
        if not app.state.copilot.client.configured:
            logger.warning("未配置API密钥，语音提示与对话功能将不可用，请通过 PUT /api/settings 设置")

        yield

        logger.info("🛑 关闭应用...")
        await app.state.copilot.close()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.state.copilot = copilot

    # 添加CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册API路由
    app.include_router(router, prefix="/api")

    # WebSocket路由：音频块事件输入、视图快照输出
    @app.websocket("/ws/voice")
    async def ws_voice(ws: WebSocket):
        await handle_voice_websocket(ws, app.state.copilot)

    # 健康检查
    @app.get("/")
    async def root():
        return {
            "message": f"{settings.APP_NAME} 后端服务运行中",
            "status": "ok",
            "version": settings.APP_VERSION
        }

    @app.get("/health")
    async def health():
        """健康检查端点"""
        copilot: Copilot = app.state.copilot
        return {
            "status": "healthy",
            "configured": copilot.client.configured,
            "model": copilot.client.model,
            "voice_active": copilot.hints.voice_active,
        }

    @app.get("/metrics")
    async def get_metrics():
        """指标端点"""
        return metrics.get_all()

    return app


# 创建FastAPI应用
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
    )
