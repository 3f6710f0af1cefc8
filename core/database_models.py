from datetime import datetime
import uuid
from sqlalchemy import Column, String, DateTime, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _new_id():
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = 'users'

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(String(100))
    role = Column(String(20), default='admin')  # 'admin' or 'friend'
    password_hash = Column(String(255), nullable=False)  # PBKDF2, base64
    password_salt = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User {self.email}>"


def create_session_factory(database_url: str, echo: bool = False):
    """Engine plus session factory; tables are created on first use"""
    options = {'echo': echo}
    if database_url == 'sqlite://' or (database_url.startswith('sqlite') and ':memory:' in database_url):
        # one shared connection so every session sees the same in-memory database
        options.update(connect_args={'check_same_thread': False}, poolclass=StaticPool)
    engine = create_engine(database_url, **options)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)
