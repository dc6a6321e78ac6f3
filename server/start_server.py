#!/usr/bin/env python3
"""
启动 Interview Copilot 后端服务
"""
import subprocess
import sys
import os

from config import settings


def main():
    print("启动 Interview Copilot 后端服务...")

    # 切换到server目录
    server_dir = os.path.dirname(os.path.abspath(__file__))
    os.chdir(server_dir)

    # 检查依赖
    try:
        import fastapi
        import uvicorn
        import aiohttp
        import pydantic_settings
        print("✅ 所有依赖已安装")
    except ImportError as e:
        print(f"❌ 缺少依赖: {e}")
        print("请运行: pip install -e .")
        sys.exit(1)

    # 启动服务
    try:
        print("🌐 启动服务...")
        print(f"📡 服务地址: http://{settings.HOST}:{settings.PORT}")
        print(f"🔗 WebSocket: ws://{settings.HOST}:{settings.PORT}/ws/voice")
        print("💡 按 Ctrl+C 停止服务")
        print("-" * 50)

        subprocess.run([
            sys.executable, "-m", "uvicorn",
            "main:app",
            "--host", settings.HOST,
            "--port", str(settings.PORT),
            "--log-level", settings.LOG_LEVEL.lower(),
        ])
    except KeyboardInterrupt:
        print("\n👋 服务已停止")
    except Exception as e:
        print(f"❌ 启动失败: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
