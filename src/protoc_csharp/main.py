from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from protoc_csharp.descriptor_loader import load_descriptor_set, load_proto
from protoc_csharp.generator.csharp_generator import generate_file, output_path
from protoc_csharp.models import GenerationError, SchemaFile
from protoc_csharp.naming import DEFAULT, IDENTITY, NameNormalizer

NORMALIZERS: Dict[str, NameNormalizer] = {
    "default": DEFAULT,
    "identity": IDENTITY,
}


def _find_files(working_path: str, extensions: List[str]) -> List[str]:
    """Recursively find files with given extensions under working_path."""
    results = []
    for ext in extensions:
        results.extend(str(p) for p in Path(working_path).rglob(f"*{ext}"))
    return sorted(results)


def _load_schemas(
    proto: Optional[str],
    descriptor_set: Optional[str],
    files: Sequence[str],
) -> List[SchemaFile]:
    if descriptor_set:
        schemas = load_descriptor_set(Path(descriptor_set).read_bytes())
        if files:
            schemas = [s for s in schemas if s.name in files]
        return schemas

    if Path(proto).is_dir():
        proto_files = _find_files(proto, [".proto"])
    else:
        proto_files = [proto]
    return [load_proto(p) for p in proto_files]


def run(
    out_dir: str,
    proto: Optional[str] = None,
    descriptor_set: Optional[str] = None,
    files: Sequence[str] = (),
    namespace: Optional[str] = None,
    normalizer: str = "default",
) -> List[str]:
    """Main pipeline: load schemas, generate one .cs file per schema."""
    schemas = _load_schemas(proto, descriptor_set, files)
    if not schemas:
        print(f"No schemas found in {descriptor_set or proto}")
        return []

    print(f"Found {len(schemas)} schema(s)")

    targets: Dict[str, str] = {}
    for schema in schemas:
        target = output_path(schema, out_dir)
        if target in targets:
            print(
                f"FATAL: {schema.name}: output {target} collides with {targets[target]}",
                file=sys.stderr,
            )
            sys.exit(1)
        targets[target] = schema.name

    generated: List[str] = []
    for schema in schemas:
        if namespace is not None:
            schema = dataclasses.replace(schema, csharp_namespace=namespace)
        try:
            out_path = generate_file(schema, out_dir, NORMALIZERS[normalizer])
        except GenerationError as e:
            print(f"FATAL: {schema.name}: {e}", file=sys.stderr)
            if e.line_contents:
                print(f"    {e.line_contents}", file=sys.stderr)
            sys.exit(1)
        generated.append(out_path)
        print(f"Generated: {out_path}")

    return generated


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Generate protobuf-net C# classes from .proto files",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--proto",
        help="Path to a .proto file or a directory containing .proto files (recursively); requires protoc",
    )
    source.add_argument(
        "--descriptor-set",
        help="Path to a serialized FileDescriptorSet (protoc --descriptor_set_out)",
    )
    parser.add_argument(
        "--file",
        action="append",
        default=[],
        help="Only generate this file from the descriptor set (repeatable)",
    )
    parser.add_argument("--out", required=True, help="Output directory for generated .cs file(s)")
    parser.add_argument(
        "--namespace",
        required=False,
        help="C# namespace for generated code (defaults to csharp_namespace or the proto package)",
    )
    parser.add_argument(
        "--normalizer",
        choices=sorted(NORMALIZERS),
        default="default",
        help="Identifier naming strategy (default: PascalCase with pluralized repeated fields)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    run(
        args.out,
        proto=args.proto,
        descriptor_set=args.descriptor_set,
        files=args.file,
        namespace=args.namespace,
        normalizer=args.normalizer,
    )


if __name__ == "__main__":
    main()
