"""
酒店预订服务主应用入口
草稿 -> 定价 -> 库存确认 -> 正式预订 的预订流水线
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from hotel_booking.config import settings
from hotel_booking.database import init_db
from hotel_booking.routers import drafts, bookings, payments

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    # 启动时初始化数据库
    init_db()
    logger.info(f"{settings.APP_NAME} started")

    yield

    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="酒店预订与计价服务",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由（草稿路由需在 /bookings/{booking_id} 之前）
app.include_router(drafts.router)
app.include_router(bookings.router)
app.include_router(payments.router)


@app.get("/")
def root():
    """根路径"""
    return {
        "name": settings.APP_NAME,
        "version": "1.0.0",
        "description": "酒店预订与计价服务"
    }


@app.get("/health")
def health_check():
    """健康检查"""
    return {"status": "healthy"}
