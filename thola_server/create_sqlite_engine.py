import pathlib

from sqlalchemy.ext.asyncio import create_async_engine

file_path = pathlib.Path(__file__).parent
file_path /= "thola.sqlite3"
sqlite_url = f"sqlite+aiosqlite:///{file_path}"


engine = create_async_engine(url=sqlite_url, echo=False)
