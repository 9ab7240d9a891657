import logging
import os
import urllib.parse
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from plm.images.api import schemas_in, schemas_out
from plm.images.errors import (
    ConcurrentUpdateConflict,
    ImageFileError,
    ImageServiceError,
    InvalidRuleGroup,
    NotFoundError,
    StoreError,
    UnsupportedFormatError,
)
from plm.images.services import ImageService

ROUTES = web.RouteTableDef()
IMAGE_SERVICE = web.AppKey("image_service", ImageService)


def get_query_dict(request: web.Request) -> dict[str, Any]:
    """
    Gets a dictionary of query parameters from the request.

    'request.query' is a MultiMapping[str], needs to be converted to a dictionary to be validated by Pydantic.
    """
    query_dict = {
        key: request.query.getall(key)
        if len(request.query.getall(key)) > 1
        else request.query.get(key)
        for key in request.query.keys()
    }
    return query_dict


def register_images_system(app: web.Application, service: ImageService) -> None:
    app[IMAGE_SERVICE] = service
    app.add_routes(ROUTES)
    db_name = urllib.parse.quote(service.config.db.name, safe="")
    # Attachment downloads live at the same path as the image url
    app.router.add_get(f"/{db_name}/{{id}}/{{name}}", download_attachment)


def _build_error_response(
    status: int, code: str, message: str, details: dict | None = None
) -> web.Response:
    return web.json_response(
        {"error": {"code": code, "message": message, "details": details or {}}},
        status=status,
    )


def _build_validation_error_response(code: str, ve: ValidationError) -> web.Response:
    return _build_error_response(400, code, "Validation failed.", {"errors": ve.json()})


def _build_service_error_response(e: ImageServiceError, details: dict | None = None) -> web.Response:
    details = dict(details or {})
    if e.step:
        details["step"] = e.step
    if isinstance(e, NotFoundError):
        return _build_error_response(404, "IMAGE_NOT_FOUND", str(e), details)
    if isinstance(e, InvalidRuleGroup):
        return _build_error_response(400, "INVALID_RULE_GROUP", str(e), details)
    if isinstance(e, UnsupportedFormatError):
        return _build_error_response(400, "UNSUPPORTED_FORMAT", str(e), details)
    if isinstance(e, ImageFileError):
        return _build_error_response(400, "FILE_NOT_READABLE", str(e), details)
    if isinstance(e, ConcurrentUpdateConflict):
        return _build_error_response(409, "UPDATE_CONFLICT", str(e), {**details, "attempts": e.attempts})
    if isinstance(e, StoreError):
        return _build_error_response(503, "STORE_UNAVAILABLE", str(e), details)
    return _build_error_response(500, "INTERNAL", "Unexpected server error.", details)


async def _read_json_body(request: web.Request) -> Any:
    try:
        return await request.json()
    except Exception:
        raise web.HTTPBadRequest(
            text='{"error": {"code": "INVALID_JSON", "message": "Request body must be valid JSON.", "details": {}}}',
            content_type="application/json",
        )


def _image_payload(image) -> dict:
    return schemas_out.ImageOut.from_image(image).model_dump(mode="json")


def _resolve_ingest_path(root: str | None, path: str) -> str | None:
    """
    Real path of ``path`` when it lies under ``root``, else None.
    Relative paths are taken from the root. Without a root the path is returned unchanged.
    """
    if not root:
        return path
    real_root = os.path.realpath(root)
    resolved = os.path.realpath(os.path.join(real_root, path))
    if os.path.commonpath([real_root, resolved]) != real_root:
        return None
    return resolved


@ROUTES.post("/api/images")
async def save_image_route(request: web.Request) -> web.Response:
    """
    Ingest a file the server can read. When no ingest root is configured the
    caller is trusted with any server path; otherwise paths outside the root
    are refused before the filesystem is touched.
    """
    service = request.app[IMAGE_SERVICE]
    payload = await _read_json_body(request)
    try:
        body = schemas_in.SaveImageBody.model_validate(payload)
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_BODY", ve)

    path = _resolve_ingest_path(service.config.ingest_root, body.path)
    if path is None:
        return _build_error_response(403, "PATH_NOT_ALLOWED", "Path is outside the ingest root.")

    try:
        image = service.save(path, retrieve_saved_image=body.retrieve_saved_image)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"path": body.path})
    except Exception:
        logging.exception("save_image failed for path=%s", body.path)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")
    return web.json_response(_image_payload(image), status=201)


@ROUTES.get("/api/images/{id}")
async def get_image_route(request: web.Request) -> web.Response:
    """
    GET request to get an image's document as JSON.
    """
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    try:
        image = service.show(oid)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid})
    except Exception:
        logging.exception("get_image failed for id=%s", oid)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")
    return web.json_response(_image_payload(image), status=200)


@ROUTES.put("/api/images/{id}")
async def update_image_route(request: web.Request) -> web.Response:
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    payload = await _read_json_body(request)
    try:
        body = schemas_in.UpdateImageBody.model_validate(payload)
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_BODY", ve)

    try:
        image = service.show(oid)
        if body.rev is not None:
            image.rev = body.rev
        if body.tags is not None:
            image.tags_remove(image.tags_get())
            image.tags_add(body.tags)
        if body.type is not None:
            image.type = body.type
        if body.batch_id is not None:
            image.batch_id = body.batch_id
        if body.variants is not None:
            image.variants = list(body.variants)
        updated = service.save_or_update(image)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid})
    except Exception:
        logging.exception("update_image failed for id=%s", oid)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")
    return web.json_response(_image_payload(updated), status=200)


@ROUTES.delete("/api/images/{id}")
async def delete_image_route(request: web.Request) -> web.Response:
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    try:
        service.delete(oid)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid})
    except Exception:
        logging.exception("delete_image failed for id=%s", oid)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")
    return web.Response(status=204)


@ROUTES.post("/api/images/{id}/tags")
async def add_image_tags(request: web.Request) -> web.Response:
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    payload = await _read_json_body(request)
    try:
        body = schemas_in.TagsBody.model_validate(payload)
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_BODY", ve)

    try:
        result = service.apply_tags(oid, body.tags)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid})
    except Exception:
        logging.exception("add_image_tags failed for id=%s", oid)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")

    payload_out = schemas_out.TagsAdd(
        added=result.added,
        already_present=result.already_present,
        total_tags=result.total_tags,
    )
    return web.json_response(payload_out.model_dump(mode="json"), status=200)


@ROUTES.delete("/api/images/{id}/tags")
async def delete_image_tags(request: web.Request) -> web.Response:
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    payload = await _read_json_body(request)
    try:
        body = schemas_in.TagsBody.model_validate(payload)
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_BODY", ve)

    try:
        result = service.remove_tags(oid, body.tags)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid})
    except Exception:
        logging.exception("delete_image_tags failed for id=%s", oid)
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")

    payload_out = schemas_out.TagsRemove(
        removed=result.removed,
        not_present=result.not_present,
        total_tags=result.total_tags,
    )
    return web.json_response(payload_out.model_dump(mode="json"), status=200)


@ROUTES.post("/api/images/query")
async def find_images_by_tags(request: web.Request) -> web.Response:
    """
    POST a rule group, e.g. {"groupOp": "AND", "rules": [{"field": "tags", "op": "eq", "data": "family"}]}.
    """
    service = request.app[IMAGE_SERVICE]
    try:
        q = schemas_in.FindByTagsQuery.model_validate(get_query_dict(request))
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_QUERY", ve)
    payload = await _read_json_body(request)

    try:
        images = service.find_by_tags(payload, limit=q.limit)
    except ImageServiceError as e:
        return _build_service_error_response(e)
    except Exception:
        logging.exception("find_images_by_tags failed")
        return _build_error_response(500, "INTERNAL", "Unexpected server error.")

    payload_out = schemas_out.ImagesList(
        images=[schemas_out.ImageOut.from_image(i) for i in images],
        total=len(images),
    )
    return web.json_response(payload_out.model_dump(mode="json"), status=200)


@ROUTES.get("/api/tags")
async def get_tags(request: web.Request) -> web.Response:
    """
    GET request to list tags with usage counts.
    """
    service = request.app[IMAGE_SERVICE]
    try:
        q = schemas_in.ListTagsQuery.model_validate(get_query_dict(request))
    except ValidationError as ve:
        return _build_validation_error_response("INVALID_QUERY", ve)

    try:
        result = service.list_tags(prefix=q.prefix, limit=q.limit, offset=q.offset, order=q.order)
    except ImageServiceError as e:
        return _build_service_error_response(e)

    payload = schemas_out.TagsList(
        tags=[schemas_out.TagUsageOut(name=t.name, count=t.count) for t in result.tags],
        total=result.total,
        has_more=(q.offset + len(result.tags)) < result.total,
    )
    return web.json_response(payload.model_dump(mode="json"))


async def download_attachment(request: web.Request) -> web.Response:
    service = request.app[IMAGE_SERVICE]
    oid = request.match_info["id"]
    name = request.match_info["name"]
    try:
        data, content_type = service.get_attachment(oid, name)
    except ImageServiceError as e:
        return _build_service_error_response(e, {"id": oid, "name": name})

    quoted = name.replace("\r", "").replace("\n", "").replace('"', "'")
    cd = f"inline; filename=\"{quoted}\"; filename*=UTF-8''{urllib.parse.quote(name)}"
    return web.Response(
        body=data,
        content_type=content_type,
        headers={"Content-Disposition": cd},
    )
