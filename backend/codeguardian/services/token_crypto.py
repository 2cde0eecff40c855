"""큐 메시지의 GitHub 토큰 암호화/복호화

RQ(Redis)에 평문 토큰이 남지 않도록 Fernet 대칭 암호화를 적용한다.
API 프로세스와 워커는 같은 TOKEN_ENCRYPTION_KEY를 사용해야 한다.
"""

from cryptography.fernet import Fernet, InvalidToken

from codeguardian.config import get_settings


def _get_fernet(key: str | None = None) -> Fernet:
    """설정의 암호화 키로 Fernet 인스턴스를 만든다.

    Raises:
        ValueError: 키가 없거나 형식이 잘못되었을 때
    """
    key = key if key is not None else get_settings().TOKEN_ENCRYPTION_KEY
    if not key:
        raise ValueError("TOKEN_ENCRYPTION_KEY가 설정되지 않았습니다")
    # Fernet 키는 32바이트 base64url이어야 함 (형식 오류 시 ValueError)
    return Fernet(key.encode())


def is_encryption_configured(key: str | None = None) -> bool:
    """유효한 암호화 키가 설정되어 있는지 확인한다."""
    try:
        _get_fernet(key)
    except ValueError:
        return False
    return True


def encrypt_token(plain_token: str, key: str | None = None) -> str:
    """평문 토큰을 Fernet 대칭 암호화하여 base64 문자열로 반환한다.

    Args:
        plain_token: 암호화할 GitHub 액세스 토큰
        key: 테스트용 키 (기본값: 설정의 TOKEN_ENCRYPTION_KEY)
    """
    return _get_fernet(key).encrypt(plain_token.encode()).decode()


def decrypt_token(encrypted_token: str, key: str | None = None) -> str:
    """암호화된 토큰을 복호화한다.

    Raises:
        ValueError: 키가 다르거나 데이터가 손상되었을 때
    """
    try:
        return _get_fernet(key).decrypt(encrypted_token.encode()).decode()
    except InvalidToken as e:
        raise ValueError("토큰 복호화에 실패했습니다 (암호화 키 불일치 또는 손상된 데이터)") from e
