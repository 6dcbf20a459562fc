import asyncio
import logging
import math
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import config
from auth import authenticate_admin, create_access_token, get_current_admin, hash_password, public_admin
from database import ADMINS, SUBMISSIONS, create_document, ensure_indexes, get_db, serialize, to_object_id
from intake import (
    build_submission,
    client_tracking,
    file_candidates,
    normalize_fields,
    parse_audio_payload,
    read_multipart,
    store_audio_recording,
    store_uploaded_files,
    submission_event,
    validation_input,
)
from notifications import EmailService, get_email_service, run_safely
from schemas import STATUSES, Admin, AdminLogin, AdminSetup, UpdateSubmission
from storage import UploadStorage, get_upload_storage
from validation import validate_file_upload, validate_form

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
logging.basicConfig(level=logging.INFO, format=_LOG_FORMAT)
logger = logging.getLogger("stories")

# Approved stories that have a stored recording
APPROVED_QUERY = {
    "status": "approved",
    "content.audioRecording.hasRecording": True,
    "content.audioRecording.filename": {"$nin": ["", None]},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    warning = config.check_secret_key()
    if warning:
        logger.warning(warning)
    config.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    try:
        ensure_indexes(get_db())
    except Exception:
        logger.exception("Could not ensure MongoDB indexes")
    yield


app = FastAPI(title="Story Submissions API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/static", StaticFiles(directory=config.STATIC_DIR, check_dir=False), name="static")
app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for error in exc.errors():
        field = str(error["loc"][-1]) if error.get("loc") else "body"
        errors.setdefault(field, error["msg"])
    return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def pagination(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "currentPage": page,
        "totalPages": total_pages,
        "totalSubmissions": total,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def status_stats(db: Database) -> dict:
    stats = {status: 0 for status in STATUSES}
    for row in db[SUBMISSIONS].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        if row["_id"] in stats:
            stats[row["_id"]] = row["count"]
    return stats


# Pages

def _page(name: str) -> FileResponse:
    return FileResponse(config.STATIC_DIR / name)


@app.get("/", include_in_schema=False)
def home_page():
    return _page("index.html")


@app.get("/submit", include_in_schema=False)
def submit_page():
    return _page("submit.html")


@app.get("/admin/login", include_in_schema=False)
def admin_login_page():
    return _page("admin/login.html")


@app.get("/admin/setup", include_in_schema=False)
def admin_setup_page():
    return _page("admin/setup.html")


@app.get("/admin/dashboard", include_in_schema=False)
def admin_dashboard_page():
    return _page("admin/dashboard.html")


@app.get("/api/health")
def health(db: Database = Depends(get_db)):
    response = {
        "backend": "running",
        "database": "not connected",
        "collections": [],
    }
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "connected"
    except Exception as e:
        response["database"] = f"error: {str(e)[:50]}"
    return response


# Admin authentication

@app.post("/api/admin/setup", status_code=201)
async def setup_admin(payload: AdminSetup, db: Database = Depends(get_db)):
    if db[ADMINS].count_documents({}) > 0:
        raise HTTPException(status_code=400, detail="Admin users already exist")

    if not payload.username.strip() or not payload.password:
        raise HTTPException(status_code=400, detail="Username, email, and password are required")

    if len(payload.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")

    admin = Admin(
        username=payload.username.strip(),
        email=payload.email,
        password=hash_password(payload.password),
        role="admin",
    )
    try:
        admin_id = create_document(db, ADMINS, admin)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Username or email already exists")

    logger.info("Initial admin %s created", admin.username)
    return {
        "message": "Initial admin user created successfully",
        "admin": {"id": admin_id, "username": admin.username, "email": admin.email, "role": admin.role},
    }


@app.post("/api/admin/login")
async def admin_login(payload: AdminLogin, db: Database = Depends(get_db)):
    admin = authenticate_admin(db, payload.username, payload.password)
    if not admin:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    token = create_access_token({
        "sub": str(admin["_id"]),
        "username": admin["username"],
        "role": admin.get("role", "admin"),
    })
    logger.info("Admin %s logged in", admin["username"])
    return {
        "message": "Login successful",
        "token": token,
        "token_type": "bearer",
        "admin": public_admin(admin),
    }


# Admin list submissions with filters and pagination
@app.get("/api/admin/submissions")
async def list_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: str = "",
    search: str = "",
    db: Database = Depends(get_db),
    admin=Depends(get_current_admin),
):
    query = {}
    if status and status != "all":
        query["status"] = status
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"personalInfo.firstName": {"$regex": pattern, "$options": "i"}},
            {"personalInfo.lastName": {"$regex": pattern, "$options": "i"}},
            {"personalInfo.email": {"$regex": pattern, "$options": "i"}},
            {"personalInfo.zipCode": {"$regex": pattern, "$options": "i"}},
        ]

    total = db[SUBMISSIONS].count_documents(query)
    cursor = db[SUBMISSIONS].find(query).sort("submittedAt", -1).skip((page - 1) * limit).limit(limit)

    return {
        "submissions": [serialize(doc) for doc in cursor],
        "pagination": pagination(page, limit, total),
        "statusStats": status_stats(db),
    }


# Get single submission
@app.get("/api/admin/submissions/{submission_id}")
async def get_submission(submission_id: str, db: Database = Depends(get_db), admin=Depends(get_current_admin)):
    oid = to_object_id(submission_id)
    doc = db[SUBMISSIONS].find_one({"_id": oid}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail="Submission not found")
    return serialize(doc)


# Update submission: status, notes, reviewer
@app.put("/api/admin/submissions/{submission_id}")
async def update_submission(
    submission_id: str,
    payload: UpdateSubmission,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    admin=Depends(get_current_admin),
):
    if payload.status not in STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    oid = to_object_id(submission_id)
    now = datetime.now(timezone.utc)
    doc = None
    if oid:
        doc = db[SUBMISSIONS].find_one_and_update(
            {"_id": oid},
            {"$set": {
                "status": payload.status,
                "adminNotes": payload.admin_notes or "",
                "reviewedAt": now,
                "reviewedBy": admin["username"],
                "updatedAt": now,
            }},
            return_document=ReturnDocument.AFTER,
        )
    if not doc:
        raise HTTPException(status_code=404, detail="Submission not found")

    logger.info("Submission %s updated to %s by %s", submission_id, payload.status, admin["username"])
    if payload.status in ("approved", "rejected"):
        background_tasks.add_task(run_safely, email_service.send_status_update, doc, payload.status)

    return {"message": "Submission updated successfully", "submission": serialize(doc)}


# Delete submission
@app.delete("/api/admin/submissions/{submission_id}")
async def delete_submission(submission_id: str, db: Database = Depends(get_db), admin=Depends(get_current_admin)):
    oid = to_object_id(submission_id)
    doc = db[SUBMISSIONS].find_one_and_delete({"_id": oid}) if oid else None
    if not doc:
        raise HTTPException(status_code=404, detail="Submission not found")
    logger.info("Submission %s deleted by %s", submission_id, admin["username"])
    return {"message": "Submission deleted successfully"}


# Public feed of approved audio stories
@app.get("/api/approved-submissions")
async def approved_submissions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Database = Depends(get_db),
):
    projection = {
        "personalInfo.firstName": 1,
        "personalInfo.lastName": 1,
        "content.textStory": 1,
        "content.audioRecording.filename": 1,
        "content.audioRecording.duration": 1,
        "content.audioRecording.size": 1,
        "submittedAt": 1,
        "procResponses": 1,
    }
    cursor = (
        db[SUBMISSIONS].find(APPROVED_QUERY, projection)
        .sort("submittedAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    items = []
    for doc in cursor:
        audio = doc.get("content", {}).get("audioRecording", {})
        items.append({
            "id": str(doc["_id"]),
            "firstName": doc["personalInfo"]["firstName"],
            "lastName": doc["personalInfo"]["lastName"],
            "textStory": doc.get("content", {}).get("textStory", ""),
            "audioFilename": audio.get("filename"),
            "audioDuration": audio.get("duration", 0),
            "audioSize": audio.get("size", 0),
            "submittedAt": doc.get("submittedAt"),
            "procResponses": doc.get("procResponses", {}),
        })

    total = db[SUBMISSIONS].count_documents(APPROVED_QUERY)
    return {"submissions": items, "pagination": pagination(page, limit, total)}


# Public story submission (multipart form with optional files and audio)
@app.post("/api/submit-form")
async def submit_form(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    storage: UploadStorage = Depends(get_upload_storage),
    email_service: EmailService = Depends(get_email_service),
):
    form_data, fields, files = await read_multipart(request)
    try:
        form = normalize_fields(fields)
        audio_payload = parse_audio_payload(form.audio_recording)

        validation = validate_form(validation_input(form, audio_payload, files))
        errors = dict(validation.errors)
        file_check = validate_file_upload(file_candidates(files))
        if not file_check.is_valid:
            errors["uploadedFiles"] = "; ".join(file_check.errors)
        if errors:
            return JSONResponse(status_code=400, content={"detail": "Validation failed", "errors": errors})

        # Files written from here on are not rolled back if the insert fails
        uploaded = await asyncio.to_thread(store_uploaded_files, storage, files)
        audio = await asyncio.to_thread(store_audio_recording, storage, audio_payload)
        submission = build_submission(form, audio, uploaded, client_tracking(request, form))
        submission_id = create_document(db, SUBMISSIONS, submission)
    finally:
        await form_data.close()

    logger.info("Submission saved: %s", submission_id)
    event, details = submission_event(submission, submission_id)
    logger.info("%s %s", event, details)

    background_tasks.add_task(run_safely, email_service.send_confirmation, submission.to_document(), submission_id)

    return {
        "message": "Submission received successfully",
        "submissionId": submission_id,
        "timestamp": submission.submitted_at,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
