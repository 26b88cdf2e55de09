from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["argon2"], deprecated = "auto")

def hash(password):
    return pwd_context.hash(password)

def verify(plain_password, password_hash):
    return pwd_context.verify(plain_password, password_hash)