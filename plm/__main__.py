import argparse
import logging

from aiohttp import web

from plm.config import ImageServiceConfig
from plm.images.api.routes import register_images_system
from plm.images.services import ImageService


def build_app(config: ImageServiceConfig, create_schema: bool = True) -> web.Application:
    app = web.Application()
    register_images_system(app, ImageService.from_config(config, create_schema=create_schema))
    return app


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="plm", description="Serve the image ingestion and tag query API.")
    parser.add_argument("--host", help="Listen host; also used in image urls.")
    parser.add_argument("--port", type=int, help="Listen port; also used in image urls.")
    parser.add_argument("--db-url", help="SQLAlchemy URL of the document store.")
    parser.add_argument("--db-name", help="Database name used in image urls.")
    parser.add_argument("--no-checksums", action="store_true", help="Skip checksum generation on ingest.")
    parser.add_argument("--ingest-root", help="Only ingest files under this directory over HTTP.")
    args = parser.parse_args(argv)

    config = ImageServiceConfig.from_env()
    db_overrides = {
        k: v
        for k, v in (("host", args.host), ("port", args.port), ("url", args.db_url), ("name", args.db_name))
        if v is not None
    }
    if db_overrides:
        config = config.model_copy(update={"db": config.db.model_copy(update=db_overrides)})
    if args.no_checksums:
        config = config.model_copy(update={"gen_checksums": False})
    if args.ingest_root:
        config = config.model_copy(update={"ingest_root": args.ingest_root})

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.info("Serving images from %s on %s:%d (db=%s)", config.db.url, config.db.host, config.db.port, config.db.name)
    web.run_app(build_app(config), host=config.db.host, port=config.db.port)


if __name__ == "__main__":
    main()
