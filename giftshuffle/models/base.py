from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase
from giftshuffle.db.metadata import metadata_obj

# BigInteger keys in production; SQLite only autoincrements plain INTEGER primary keys.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
