"""Command-line client: put, get and list files in the chain."""

from __future__ import annotations

import argparse
import logging
import os
from contextlib import closing
from typing import Iterable, Optional, Sequence

from .errors import RpcError
from .messages import StreamReadReq, StreamWriteReq, WriteAck
from .node import iter_file_chunks
from .transport import DEFAULT_TIMEOUT, ManagerClient, NodeClient

__all__ = ["get_file", "put_file", "list_folder", "format_listing", "main", "DEFAULT_MANAGER"]

log = logging.getLogger(__name__)

DEFAULT_MANAGER = "localhost:9005"


def get_file(manager_address: str, folder: str, file_name: str) -> bytes:
    """Fetch a file's contents from a node the manager picks for reading."""
    with ManagerClient(manager_address) as manager:
        reader = manager.get_read_node(DEFAULT_TIMEOUT)
        log.info("Read node: %s (%s)", reader.id, reader.addr)
        with NodeClient(reader.addr) as node:
            pieces = []
            for number, chunk in enumerate(
                node.stream_read(StreamReadReq(folder=folder, file_name=file_name), DEFAULT_TIMEOUT),
                start=1,
            ):
                log.info("Chunk #%d received (%d bytes)", number, len(chunk.data))
                pieces.append(chunk.data)
    log.info("All chunks received")
    return b"".join(pieces)


def put_file(manager_address: str, folder: str, file_path: str) -> WriteAck:
    """Upload a local file through the head of the chain."""
    file_name = os.path.basename(file_path)
    with closing(iter_file_chunks(file_path)) as chunks, ManagerClient(manager_address) as manager:
        head = manager.get_write_head(DEFAULT_TIMEOUT)
        log.info("Head node for write: %s (%s)", head.id, head.addr)
        with NodeClient(head.addr) as writer:
            requests = (
                StreamWriteReq(folder=folder, seq=0, file_name=file_name, path="", data=data)
                for data in chunks
            )
            return writer.stream_write(requests, DEFAULT_TIMEOUT)


def list_folder(manager_address: str, folder: str) -> list[str]:
    """List files and sub-folders (with a trailing '/') under a folder."""
    with ManagerClient(manager_address) as manager:
        reader = manager.get_read_node(DEFAULT_TIMEOUT)
        with NodeClient(reader.addr) as node:
            return node.list_files(folder, DEFAULT_TIMEOUT)


def format_listing(folder: str, names: Iterable[str]) -> str:
    """Render a folder listing, marking sub-folders and files."""
    lines = [f"📂 Files in folder {folder}:"]
    for name in names:
        if name.endswith("/"):
            lines.append(f"📁 {name.removesuffix('/')}")
        else:
            lines.append(f"📄 {name}")
    return "\n".join(lines)


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="craq-cli", description="Store and fetch files in a CRAQ chain.")
    parser.add_argument("--manager", default=DEFAULT_MANAGER, help="manager address")
    commands = parser.add_subparsers(dest="command")

    get = commands.add_parser("get", help="Get the file")
    get.add_argument("--folder", default="", help="folder in the chain")
    get.add_argument("--file", default="", help="file name to fetch")

    put = commands.add_parser("put", help="Create a file")
    put.add_argument("--folder", default="", help="folder to upload to")
    put.add_argument("--file", default="", help="local file path to upload")

    listing = commands.add_parser("list", help="List all files in a folder")
    listing.add_argument("-f", "--folder", default="", help="folder to list")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one client command; return the exit status."""
    parser = _parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "get":
            if not args.folder or not args.file:
                log.error("--folder, and --file are required")
                return 1
            data = get_file(args.manager, args.folder, args.file)
            print("✅ Final Output:")
            print(data.decode("utf-8", errors="replace"))
        elif args.command == "put":
            if not args.folder or not args.file:
                log.error("--folder, and --file are required")
                return 1
            ack = put_file(args.manager, args.folder, args.file)
            log.info("Write complete: Folder=%s File=%s Seq=%d", ack.folder, ack.file_name, ack.seq)
        else:
            if not args.folder:
                log.error("Folder must be provided using --folder")
                return 1
            print(format_listing(args.folder, list_folder(args.manager, args.folder)))
    except (RpcError, OSError) as exc:
        log.error("%s failed: %s", args.command, exc)
        return 1
    return 0