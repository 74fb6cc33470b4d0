import synexa.storage.db_config as db_config
from synexa.datamodel import UserInfo
from synexa.logger import logger

__all__ = ["create_user", "get_user_by_id", "update_user_origin"]

_COLUMNS = (
    "user_id, user_name, timezone, email, phone_number, telegram_user_id, "
    "origin_address, origin_lat, origin_lng"
)


def _row_to_user(row) -> UserInfo:
    return UserInfo(
        user_id=row[0],
        user_name=row[1],
        timezone=row[2],
        email=row[3],
        phone_number=row[4],
        telegram_user_id=row[5],
        origin_address=row[6],
        origin_lat=row[7],
        origin_lng=row[8],
    )


async def create_user(
    user_name: str | None = None,
    timezone: str | None = None,
    email: str | None = None,
    phone_number: str | None = None,
    telegram_user_id: int | None = None,
    origin_address: str | None = None,
    origin_lat: float | None = None,
    origin_lng: float | None = None,
) -> UserInfo:
    """创建新用户"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        "INSERT INTO users (user_name, timezone, email, phone_number, telegram_user_id, "
        "origin_address, origin_lat, origin_lng) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (user_name, timezone, email, phone_number, telegram_user_id, origin_address, origin_lat, origin_lng)
    ) as cursor:
        user_id = cursor.lastrowid
    await conn.commit()
    logger.info(f"创建新用户: user_id={user_id}, user_name={user_name}")
    user = await get_user_by_id(user_id)
    assert user is not None
    return user


async def get_user_by_id(user_id: int) -> UserInfo | None:
    """通过用户 ID 获取用户信息"""
    conn = db_config.ensure_conn()
    async with conn.execute(f"SELECT {_COLUMNS} FROM users WHERE user_id = ?", (user_id,)) as cursor:
        row = await cursor.fetchone()
    if row:
        return _row_to_user(row)
    else:
        return None


async def update_user_origin(user_id: int, origin_address: str | None, origin_lat: float | None,
                             origin_lng: float | None) -> None:
    """更新用户出发地(路况与天气的参考位置)"""
    conn = db_config.ensure_conn()
    await conn.execute(
        "UPDATE users SET origin_address = ?, origin_lat = ?, origin_lng = ? WHERE user_id = ?",
        (origin_address, origin_lat, origin_lng, user_id)
    )
    await conn.commit()
    logger.trace(f"更新用户出发地: user_id={user_id}, origin_address={origin_address}")
