import json
import logging
import mimetypes
import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, settings as default_settings
from errors import LibraryError
from identifiers import to_iso, utcnow
from library import Library
from reports import MAX_REPORT_LIMIT
from user import User

logger = logging.getLogger(__name__)


# --- İstek Modelleri ---
class SignupModel(BaseModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: str | None = Field(default=None, description="admin | member (varsayılan: member); admin için yönetici belirteci gerekir")


class LoginModel(BaseModel):
    email: str | None = None
    password: str | None = None


class CoverUploadModel(BaseModel):
    filename: str | None = None
    base64: str | None = Field(default=None, description="data:image/...;base64, öneki olabilir")


class BookCreateModel(BaseModel):
    title: str | None = None
    author: str | None = None
    genre: str | None = None
    year: int | str | None = None
    isbn: str | None = None
    cover: str | None = Field(default=None, description="/uploadCover ile dönen yol")


class BookUpdateModel(BookCreateModel):
    id: str | None = None


class MemberCreateModel(BaseModel):
    name: str | None = None
    email: str | None = None
    role: str | None = None


class MemberUpdateModel(MemberCreateModel):
    id: str | None = None


class LoanRequestModel(BaseModel):
    bookId: str | None = None
    memberId: str | None = None
    days: Any = Field(default=None, description="Pozitif olmayan veya sayısal olmayan değerler 7 olur; MAX_LOAN_DAYS üstü reddedilir")


# --- Yardımcılar ---
def _http_error(exc: LibraryError) -> HTTPException:
    """Servis hatasını aynı durum koduyla bir HTTPException'a çevir."""
    return HTTPException(status_code=exc.status_code, detail=exc.message)


def _fields(model: BaseModel, *exclude: str) -> Dict[str, Any]:
    # Yalnızca istemcinin gönderdiği alanlar; kısmi güncellemeler diğerlerine dokunmaz
    return {key: value for key, value in model.model_dump(exclude_unset=True).items() if key not in exclude}


def get_library(request: Request) -> Library:
    return request.app.state.library


bearer_scheme = HTTPBearer(auto_error=False)


def current_user(
    library: Library = Depends(get_library),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[User]:
    """Bearer belirtecini kullanıcıya çözer; REQUIRE_AUTH açıkken belirteç zorunludur."""
    token = credentials.credentials if credentials else None
    user = library.auth.user_for_token(token)
    if user is None and library.config.require_auth:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def optional_user(
    library: Library = Depends(get_library),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Optional[User]:
    # Belirteç isteğe bağlı; geçersiz belirteç anonim sayılır
    return library.auth.user_for_token(credentials.credentials if credentials else None)


def require_admin(
    library: Library = Depends(get_library),
    user: Optional[User] = Depends(current_user),
) -> Optional[User]:
    if library.config.require_auth and (user is None or not user.is_admin):
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


async def raw_id(request: Request) -> Optional[str]:
    """DELETE gövdesi ham kimliktir; JSON {"id": ...} ve ?id= de kabul edilir."""
    text = (await request.body()).decode("utf-8", errors="replace").strip()
    if text.startswith("{") or text.startswith('"'):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            text = str(parsed.get("id") or "")
        elif isinstance(parsed, str):
            text = parsed
    return text.strip() or request.query_params.get("id")


def create_app(config: Optional[Settings] = None,
               clock: Optional[Callable[[], datetime]] = None) -> FastAPI:
    """Uygulamayı verilen ayarlarla kur. Testler kendi Settings ve saatini geçirir."""
    config = config or default_settings
    library = Library(config, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Başlangıçta veritabanına bağlan; bağlanamazsa uygulama başlamaz
        logging.basicConfig(
            level=getattr(logging, config.log_level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        library.open()
        try:
            yield
        finally:
            # Kapanışta havuzu boşalt
            library.close()

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)
    app.state.library = library

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Ön uçuş ve Ortak Başlıklar Ara Katmanı ---
    @app.middleware("http")
    async def add_common_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS")
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type, Authorization")
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response

    # --- Hata Çerçeveleme ---
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "msg": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        msg = "Invalid request"
        if errors:
            where = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            msg = f"Invalid request: {where} {errors[0].get('msg', '')}".strip()
        return JSONResponse(status_code=400, content={"ok": False, "msg": msg})

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "msg": exc.message})

    @app.exception_handler(sqlite3.Error)
    async def storage_error_handler(request: Request, exc: sqlite3.Error):
        # Ayrıntılar yalnızca sunucu günlüğünde kalır
        logger.exception(f"Storage error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"ok": False, "msg": "Internal server error"})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"ok": False, "msg": "Internal server error"})

    app.include_router(_build_router(library))
    _mount_frontend(app, library)
    return app


def _build_router(library: Library) -> APIRouter:
    router = APIRouter()

    # --- Sağlık Kontrolü ---
    @router.get("/health")
    def health():
        """Hızlı bir veritabanı denemesi yapan hafif sağlık uç noktası."""
        db_ok = True
        try:
            with library.db.connection() as conn:
                conn.execute("SELECT 1")
        except sqlite3.Error:
            db_ok = False
        return {
            "status": "healthy" if db_ok else "degraded",
            "timestamp": to_iso(utcnow()),
            "db": db_ok,
            "version": library.config.app_version,
        }

    # --- Kimlik Doğrulama ---
    @router.post("/signup", status_code=201)
    def signup(payload: SignupModel, caller: Optional[User] = Depends(optional_user)):
        # Yönetici hesabını yalnızca oturum açmış bir yönetici oluşturabilir
        allow_admin = not library.config.require_auth or (caller is not None and caller.is_admin)
        try:
            library.auth.signup(payload.name, payload.email, payload.password, payload.role,
                                allow_admin=allow_admin)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True}

    @router.post("/login")
    def login(payload: LoginModel):
        try:
            token, user = library.auth.login(payload.email, payload.password)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "token": token, "user": user.public_fields()}

    @router.post("/logout")
    def logout(
        user: Optional[User] = Depends(current_user),
        credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    ):
        library.auth.logout(credentials.credentials if credentials else None)
        return {"ok": True}

    @router.get("/me")
    def me(user: Optional[User] = Depends(current_user)):
        if user is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        return user.to_dict()

    # --- Kapak Yükleme ---
    @router.post("/uploadCover")
    def upload_cover(payload: CoverUploadModel, user: Optional[User] = Depends(current_user)):
        try:
            path = library.covers.save(payload.filename, payload.base64)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "path": path}

    # --- Kitaplar ---
    @router.get("/books")
    def list_books():
        return [book.to_dict() for book in library.catalog.list_books()]

    @router.get("/books/{book_id}")
    def get_book(book_id: str):
        try:
            return library.catalog.get_book(book_id).to_dict()
        except LibraryError as exc:
            raise _http_error(exc) from exc

    @router.post("/books", status_code=201)
    def add_book(payload: BookCreateModel, user: Optional[User] = Depends(current_user)):
        try:
            book = library.catalog.add_book(_fields(payload))
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "id": book.book_id}

    @router.put("/books")
    def update_book(payload: BookUpdateModel, user: Optional[User] = Depends(current_user)):
        try:
            book = library.catalog.update_book(payload.id, _fields(payload, "id"))
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "book": book.to_dict()}

    @router.delete("/books")
    def delete_book(book_id: Optional[str] = Depends(raw_id), user: Optional[User] = Depends(require_admin)):
        try:
            library.catalog.remove_book(book_id)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True}

    # --- Üyeler ---
    @router.get("/members")
    def list_members():
        return [member.to_dict() for member in library.members.list_members()]

    @router.get("/members/{member_id}")
    def get_member(member_id: str):
        try:
            return library.members.get_member(member_id).to_dict()
        except LibraryError as exc:
            raise _http_error(exc) from exc

    @router.post("/members", status_code=201)
    def add_member(payload: MemberCreateModel, user: Optional[User] = Depends(current_user)):
        try:
            member = library.members.add_member(_fields(payload))
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "id": member.member_id}

    @router.put("/members")
    def update_member(payload: MemberUpdateModel, user: Optional[User] = Depends(current_user)):
        try:
            member = library.members.update_member(payload.id, _fields(payload, "id"))
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "member": member.to_dict()}

    @router.delete("/members")
    def delete_member(member_id: Optional[str] = Depends(raw_id), user: Optional[User] = Depends(require_admin)):
        try:
            library.members.remove_member(member_id)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True}

    # --- Ödünç Verme ve İade ---
    @router.post("/borrow")
    def borrow(payload: LoanRequestModel, user: Optional[User] = Depends(current_user)):
        try:
            due_date = library.circulation.borrow(payload.bookId, payload.memberId, payload.days)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "dueDate": to_iso(due_date)}

    @router.post("/return")
    def return_book(payload: LoanRequestModel, user: Optional[User] = Depends(current_user)):
        try:
            fine = library.circulation.return_book(payload.bookId, payload.memberId)
        except LibraryError as exc:
            raise _http_error(exc) from exc
        return {"ok": True, "fine": fine}

    @router.get("/loans")
    def list_loans(
        member_id: Optional[str] = Query(None, alias="memberId"),
        open_only: bool = Query(False, alias="open"),
    ):
        return [loan.to_dict() for loan in library.circulation.loans(member_id, open_only)]

    # --- Raporlar ---
    @router.get("/reports/most-borrowed")
    def most_borrowed(limit: Optional[int] = Query(None, ge=1, le=MAX_REPORT_LIMIT)):
        return [book.to_dict() for book in library.reports.most_borrowed(limit)]

    @router.get("/reports/active-members")
    def active_members(limit: Optional[int] = Query(None, ge=1, le=MAX_REPORT_LIMIT)):
        return [row.to_dict() for row in library.reports.active_members(limit)]

    # --- Yüklenen Kapaklar ---
    @router.get("/uploads/{name}")
    def uploaded_cover(name: str):
        path = library.covers.resolve(f"/uploads/{name}")
        if path is None or not os.path.isfile(path):
            raise HTTPException(status_code=404, detail="Not found")
        # Bilinmeyen uzantılar resim olarak sunulur
        media_type = mimetypes.guess_type(path)[0] or "image/jpeg"
        return FileResponse(path, media_type=media_type)

    return router


def _mount_frontend(app: FastAPI, library: Library) -> None:
    """Ön yüz klasörlerini bağla; olmayan klasörler atlanır."""
    frontend_dir = library.config.frontend_dir

    @app.get("/", include_in_schema=False)
    def index():
        path = os.path.join(frontend_dir, "index.html")
        if not os.path.isfile(path):
            raise HTTPException(status_code=404, detail="Not found")
        return FileResponse(path, media_type="text/html")

    for prefix in ("pages", "css", "js"):
        directory = os.path.join(frontend_dir, prefix)
        if os.path.isdir(directory):
            app.mount(f"/{prefix}", StaticFiles(directory=directory), name=prefix)


app = create_app()
