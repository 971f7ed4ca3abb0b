# craqchain

A small file store replicated along a chain of nodes using CRAQ
(Chain Replication with Apportioned Queries).

- A **manager** keeps the registry of nodes. Once the expected number of
  nodes has registered it fixes the chain: the first node to register is
  the head, the last one the tail.
- **Nodes** receive files as streams of 64 KiB chunks. The head assigns
  each write the next sequence number for its folder and file name. Every
  node records the version as *dirty*, passes the file to its successor,
  and marks it *clean* once the acknowledgement comes back from the tail.
  Reads and folder listings may be served by any node; version queries
  are answered by the tail only.
- The **client** uploads files through the head, downloads them from a
  node chosen at random by the manager, and lists folders.

All traffic runs over insecure gRPC channels. Message bodies are compact
JSON (byte fields as base64 text), so the services are meant to be called
through this package's own clients.

## Installation

```
pip install craqchain
```

For running the tests:

```
pip install "craqchain[test]"
pytest
```

## Running a cluster

### Manager

The manager must be told how many nodes make up the chain through the
`EXPECTED_NODE_COUNT` environment variable:

```
EXPECTED_NODE_COUNT=3 craq-manager
```

It listens on `[::]:9005` unless `--listen ADDRESS` is given. A missing,
non-numeric or non-positive count makes it exit with status 1.

### Nodes

Each node reads `config/config.json` from its working directory (or the
file given with `--config PATH`):

```json
{
  "manager": "localhost:9005",
  "db": {"addr": "node1-metadata.sqlite3"}
}
```

`manager` is the manager's address. `db.addr` is the SQLite database file
holding the node's version metadata (`:memory:` keeps it in memory). The
`chunk_metadata` table, with the columns `folder`, `file_name`, `seq`,
`state` and `path` and keyed on `(folder, file_name)`, is created if it
does not exist. Each node should have a database of its own.

Start every node with its identity and listening address:

```
NODE_ID=node1 NODE_ADDRESS=localhost:9101 craq-node
NODE_ID=node2 NODE_ADDRESS=localhost:9102 craq-node
NODE_ID=node3 NODE_ADDRESS=localhost:9103 craq-node
```

A node registers with the manager, then asks for its successor, retrying
every two seconds (up to 30 times) while the chain is not yet finalized.
A node without a successor is the tail; the node the manager names as the
write head is the head. Files received by a node are written under the
system temporary directory as `<tmp>/<folder>/<file name>`.

## Using the client

The client talks to the manager at `localhost:9005`; pass
`--manager ADDRESS` before the command to use another one.

Upload a local file into a folder:

```
craq-cli put --folder /craq/docs --file ./notes.txt
```

Print a stored file:

```
craq-cli get --folder /craq/docs --file notes.txt
```

List a folder; sub-folders are shown with a folder marker, files with a
file marker:

```
craq-cli list --folder /craq
craq-cli list -f /craq
```

A missing option or a failed call makes the client exit with status 1.

## Using it from Python

The same operations are available as functions in `craqchain.cli`:

```python
from craqchain.cli import put_file, get_file, list_folder, format_listing

ack = put_file("localhost:9005", "/craq/docs", "notes.txt")
data = get_file("localhost:9005", "/craq/docs", "notes.txt")
names = list_folder("localhost:9005", "/craq")
print(format_listing("/craq", names))
```

The building blocks can also be used directly:

- `craqchain.config` — `load(path)` reads the JSON configuration into
  `Config`, `DBInfo` and `NodeInfo` dataclasses.
- `craqchain.manager.Manager` — the chain registry: `register_node`,
  `get_successor`, `heartbeat`, `is_alive`, `get_write_head`,
  `get_read_node`.
- `craqchain.storage` — the `StorageClient` protocol, the `Chunk` record,
  `VersionState`, and `CraqStore`, its SQLite implementation.
- `craqchain.node.Node` — write handling and version queries over any
  `StorageClient`; `iter_file_chunks` reads a file in 64 KiB pieces.
- `craqchain.server.NodeServer` — streamed writes and reads, listings and
  version queries for one node.
- `craqchain.messages` — the request and response dataclasses with
  `encode` and `decode`.
- `craqchain.transport` — `ManagerClient`, `NodeClient`, `serve_manager`
  and `serve_node`.

Failed calls raise `craqchain.errors.RpcError`, carrying a gRPC status
code and a message.

## Limitations

- The chain is fixed once the expected number of nodes has registered.
  Nodes added later are recorded but never join it, and nothing reorders
  the chain when a node fails.
- The manager records heartbeats, but nodes do not send them and nothing
  acts on a node that stops responding.
- Reads are served from whatever version the chosen node holds; the
  client does not consult the tail about dirty versions.
- There is no authentication or transport encryption.