"""Kütüphane servislerinin fırlattığı hata türleri.

Her hata ağ geçidinin döneceği HTTP durum kodunu taşır; uç noktalar
bunları ayrı bir eşleme tablosu olmadan çevirir.
"""


class LibraryError(Exception):
    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(LibraryError, ValueError):
    status_code = 400


class MissingFieldError(BadRequestError):
    pass


class ConflictError(LibraryError, ValueError):
    status_code = 400


class NotFoundError(LibraryError, LookupError):
    status_code = 404


class UnauthorizedError(LibraryError):
    status_code = 401


class ForbiddenError(LibraryError):
    status_code = 403


class StorageError(LibraryError):
    """Depoya ulaşılamadı ya da yazma başarısız oldu; ayrıntılar günlükte kalır."""
    status_code = 500
