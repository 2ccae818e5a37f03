# -*- coding: utf-8 -*-
# Protocol buffer classes for xt.proto.
# The file descriptor is assembled from descriptor_pb2 so the module does not
# depend on a protoc run; keep it in sync with xt.proto.
"""Protocol buffer classes for rollup_probe/proto/xt.proto."""
from google.protobuf import descriptor_pb2 as _descriptor_pb2
from google.protobuf import descriptor_pool as _descriptor_pool
from google.protobuf import symbol_database as _symbol_database
from google.protobuf.internal import builder as _builder

_sym_db = _symbol_database.Default()

_FIELD = _descriptor_pb2.FieldDescriptorProto


def _field(name, number, field_type, label=_FIELD.LABEL_OPTIONAL, type_name=None, oneof_index=None):
    field = _FIELD(name=name, number=number, type=field_type, label=label, json_name=_json_name(name))
    if type_name is not None:
        field.type_name = type_name
    if oneof_index is not None:
        field.oneof_index = oneof_index
    return field


def _json_name(name):
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _file_descriptor_proto():
    file_proto = _descriptor_pb2.FileDescriptorProto(
        name="rollup_probe/proto/xt.proto",
        package="rollup_probe.xt",
        syntax="proto3",
    )

    message = file_proto.message_type.add(name="Message")
    message.field.append(_field("sender_id", 1, _FIELD.TYPE_STRING))
    message.field.append(_field(
        "xt_request", 2, _FIELD.TYPE_MESSAGE,
        type_name=".rollup_probe.xt.XTRequest", oneof_index=0,
    ))
    message.oneof_decl.add(name="payload")

    xt_request = file_proto.message_type.add(name="XTRequest")
    xt_request.field.append(_field(
        "transactions", 1, _FIELD.TYPE_MESSAGE,
        label=_FIELD.LABEL_REPEATED, type_name=".rollup_probe.xt.TransactionRequest",
    ))

    tx_request = file_proto.message_type.add(name="TransactionRequest")
    tx_request.field.append(_field("chain_id", 1, _FIELD.TYPE_BYTES))
    tx_request.field.append(_field("transaction", 2, _FIELD.TYPE_BYTES, label=_FIELD.LABEL_REPEATED))

    return file_proto


DESCRIPTOR = _descriptor_pool.Default().AddSerializedFile(_file_descriptor_proto().SerializeToString())

_globals = globals()
_builder.BuildMessageAndEnumDescriptors(DESCRIPTOR, _globals)
_builder.BuildTopDescriptorsAndMessages(DESCRIPTOR, 'rollup_probe.proto.xt_pb2', _globals)
