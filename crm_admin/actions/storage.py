"""
Storage bucket and object actions (company branding assets and the like).
"""

import mimetypes
from pathlib import Path

from crm_admin.actions.runner import ActionContext, ActionResult, action
from crm_admin.errors import ActionAbort

DEFAULT_FILE_SIZE_LIMIT = 5 * 1024 * 1024
DEFAULT_MIME_TYPES = ["image/png", "image/jpeg", "image/svg+xml", "image/x-icon"]


def _split(path: str) -> tuple:
    """'logos/tenant/header.png' -> ('logos/tenant', 'header.png')"""
    if "/" in path:
        prefix, name = path.rsplit("/", 1)
        return prefix, name
    return "", path


def _listed_names(ctx: ActionContext, bucket: str, prefix: str) -> set:
    return {obj.get("name") for obj in ctx.client.list_objects(bucket, prefix=prefix, limit=1000)}


@action("storage.buckets")
def list_buckets(ctx: ActionContext, result: ActionResult):
    """List storage buckets."""
    buckets = ctx.client.list_buckets()
    result.records = buckets
    result.affected = len(buckets)
    ctx.log(f"Found {len(buckets)} bucket(s)")
    for bucket in buckets:
        ctx.log(f"  - {bucket.get('id')} (public: {bucket.get('public')}, created: {bucket.get('created_at')})")


@action("storage.ensure-bucket", mutates=True)
def ensure_bucket(ctx: ActionContext, result: ActionResult):
    """Create a storage bucket if it does not exist."""
    bucket_id = ctx.require("bucket")

    existing = ctx.client.get_bucket(bucket_id)
    if existing:
        ctx.log(f"Bucket '{bucket_id}' already exists (public: {existing.get('public')})")
        result.records = [existing]
        result.affected = 0
        return None

    public = ctx.get_bool("public", True)
    mime_types = ctx.get_list("allowed_mime_types") or DEFAULT_MIME_TYPES
    size_limit = ctx.get_int("file_size_limit", DEFAULT_FILE_SIZE_LIMIT)

    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would create bucket '{bucket_id}' (public: {public}, limit: {size_limit} bytes)")
        result.affected = 1
        return None

    created = ctx.client.create_bucket(bucket_id, public=public, allowed_mime_types=mime_types, file_size_limit=size_limit)
    result.records = [created]
    result.affected = 1
    ctx.log(f"Created bucket '{bucket_id}'")

    def verify():
        return ctx.client.get_bucket(bucket_id) is not None

    return verify


@action("storage.list")
def list_objects(ctx: ActionContext, result: ActionResult):
    """List objects in a bucket under a prefix."""
    bucket = ctx.require("bucket")
    prefix = ctx.get("prefix", "")

    objects = ctx.client.list_objects(bucket, prefix=prefix, limit=ctx.get_int("limit", 100))
    result.records = objects
    result.affected = len(objects)
    ctx.log(f"{bucket}/{prefix}: {len(objects)} object(s)")
    for obj in objects:
        size = (obj.get("metadata") or {}).get("size")
        ctx.log(f"  - {obj.get('name')} ({size if size is not None else '?'} bytes)")


@action("storage.upload", mutates=True)
def upload_object(ctx: ActionContext, result: ActionResult):
    """Upload a local file into a bucket."""
    bucket = ctx.require("bucket")
    file_path = Path(ctx.require("file"))
    if not file_path.is_file():
        raise ActionAbort(f"File not found: {file_path}")

    object_path = ctx.get("path", file_path.name)
    upsert = ctx.get_bool("upsert", False)
    content_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"
    data = file_path.read_bytes()

    ctx.log(f"{file_path} -> {bucket}/{object_path} ({len(data)} bytes, {content_type})")
    if ctx.dry_run:
        ctx.log(f"DRY_RUN: would upload to {bucket}/{object_path} (upsert: {upsert})")
        result.affected = 1
        return None

    uploaded = ctx.client.upload_object(bucket, object_path, data, content_type=content_type, upsert=upsert)
    result.records = [uploaded]
    result.affected = 1
    ctx.log(f"Uploaded {bucket}/{object_path}")

    prefix, name = _split(object_path)

    def verify():
        return name in _listed_names(ctx, bucket, prefix)

    return verify


@action("storage.remove", mutates=True)
def remove_objects(ctx: ActionContext, result: ActionResult):
    """Remove objects from a bucket."""
    bucket = ctx.require("bucket")
    paths = ctx.get_list("paths")
    if not paths:
        raise ActionAbort("Pass -p paths=a.png,b.png")

    if ctx.dry_run:
        for path in paths:
            ctx.log(f"DRY_RUN: would remove {bucket}/{path}")
        result.affected = len(paths)
        return None

    removed = ctx.client.remove_objects(bucket, paths)
    result.records = removed
    result.affected = len(removed)
    ctx.log(f"Removed {len(removed)} of {len(paths)} object(s)")

    def verify():
        for path in paths:
            prefix, name = _split(path)
            if name in _listed_names(ctx, bucket, prefix):
                return False
        return True

    return verify
