"""API路由聚合"""
from fastapi import APIRouter

from gltf_viewer.api.routes import documents, events, gltf, oauth

api_router = APIRouter()

# 文档元素/零件列表 (Onshape 透传)
api_router.include_router(documents.router, tags=["documents"])

# GLTF 转换: 触发与轮询
api_router.include_router(gltf.router, tags=["gltf"])

# Onshape webhook 回调
api_router.include_router(events.router, tags=["events"])

# OAuth 登录流程挂在根路径
oauth_router = oauth.router
