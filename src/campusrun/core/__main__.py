"""CLI 入口模块 -- python -m campusrun.core <command>

支持的命令：
  rebuild-projections  从时间线重建 tasks 表的状态投影
  verify-timelines     校验所有时间线是否为合法的状态路径
"""

import asyncio
import sys

from .config import get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m campusrun.core <command>")
        print("命令:")
        print("  rebuild-projections  从时间线重建 tasks 表的状态投影")
        print("  verify-timelines     校验所有时间线")
        sys.exit(1)

    command = sys.argv[1]

    if command == "rebuild-projections":
        asyncio.run(rebuild_projections())
    elif command == "verify-timelines":
        problems = asyncio.run(verify_timelines())
        sys.exit(1 if problems else 0)
    else:
        print(f"未知命令: {command}")
        print("可用命令: rebuild-projections, verify-timelines")
        sys.exit(1)


async def rebuild_projections() -> None:
    """执行 Projection 重建"""
    from .projection import rebuild_all
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print("开始重建 Projection...")

    store_group = await create_store_group(db_path)
    try:
        event_count = await rebuild_all(
            store_group.conn,
            store_group.event_store,
            store_group.task_store,
        )
        print(f"重建完成，处理 {event_count} 条事件")
    finally:
        await store_group.conn.close()


async def verify_timelines() -> dict[str, str]:
    """执行时间线校验

    使用宽松流转表，任意 helper 取消策略下提交的历史都视为合法。
    """
    from .projection import verify_all
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        problems = await verify_all(store_group.event_store)
    finally:
        await store_group.conn.close()

    if problems:
        for task_id, message in problems.items():
            print(f"{task_id}: {message}")
    else:
        print("所有时间线合法")
    return problems


if __name__ == "__main__":
    main()
