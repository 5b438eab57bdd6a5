import os
import uuid
import bcrypt
from datetime import datetime, timedelta
from jose import jwt
from dotenv import load_dotenv

load_dotenv()

# KUNCI RAHASIA (Nanti di production taruh di .env, jangan hardcode!)
SECRET_KEY = os.getenv("SECRET_KEY", "UNSAFE_DEFAULT_KEY_CHANGE_THIS")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 480))


def verify_password(plain_password: str, hashed_password: str) -> bool:
    # Convert string ke bytes karena bcrypt butuh bytes
    password_byte_enc = plain_password.encode('utf-8')
    hashed_password_byte_enc = hashed_password.encode('utf-8')

    return bcrypt.checkpw(password_byte_enc, hashed_password_byte_enc)


def get_password_hash(password: str) -> str:
    pwd_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode('utf-8')


def create_access_token(data: dict):
    """
    Bikin JWT. Return (token, jti, expire) supaya pemanggil bisa simpan sesi di DB.
    """
    to_encode = data.copy()
    jti = to_encode.get("jti") or str(uuid.uuid4())
    expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire, "jti": jti})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, jti, expire


def decode_access_token(token: str) -> dict:
    # JWTError dibiarkan naik, yang manggil yang putuskan
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
