"""
@description 重复文件查询接口
@responsibility 查询数据库中已记录的重复分组，以及单个文件的重复项
"""

from fastapi import APIRouter, HTTPException

from foldersort.schemas.api import success_response
from foldersort.services.duplicate_detector import find_duplicates_of_file, get_all_duplicates

router = APIRouter()


@router.get("/duplicates")
async def list_duplicates():
    groups = await get_all_duplicates()
    return success_response(
        data={"count": len(groups), "duplicates": groups},
        message="获取重复文件成功",
    )


@router.get("/duplicates/file/{file_id}")
async def get_file_duplicates(file_id: int):
    result = await find_duplicates_of_file(file_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"文件记录 '{file_id}' 不存在")
    message = "获取文件重复项成功" if result["hashed"] else "该文件尚未计算指纹"
    return success_response(data=result, message=message)
