"""OVapi vendor extension for GTFS-RT vehicle positions.

OVapi publishes the vehicle's current delay in an extension message on
``VehiclePosition`` (field 1003). The extension is described here and added
to the default descriptor pool so that parsing a ``FeedMessage`` populates
``vehicle.Extensions[OVAPI_VEHICLE_POSITION]``. Registration must happen
before any feed is parsed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.transit import gtfs_realtime_pb2

if TYPE_CHECKING:
    from google.protobuf.descriptor import FieldDescriptor

OVAPI_PROTO_FILE = "gtfs-realtime-OVapi.proto"
OVAPI_VEHICLE_POSITION_FIELD = 1003
EXTENSION_FULL_NAME = "transit_realtime.ovapi_vehicle_position"
MESSAGE_FULL_NAME = "transit_realtime.OVapiVehiclePosition"


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    field_proto = descriptor_pb2.FieldDescriptorProto
    file_proto = descriptor_pb2.FileDescriptorProto(
        name=OVAPI_PROTO_FILE,
        package="transit_realtime",
        syntax="proto2",
    )
    file_proto.dependency.append(gtfs_realtime_pb2.DESCRIPTOR.name)

    message = file_proto.message_type.add(name="OVapiVehiclePosition")
    message.field.add(
        name="delay",
        number=1,
        label=field_proto.LABEL_OPTIONAL,
        type=field_proto.TYPE_INT32,
    )

    file_proto.extension.add(
        name="ovapi_vehicle_position",
        number=OVAPI_VEHICLE_POSITION_FIELD,
        label=field_proto.LABEL_OPTIONAL,
        type=field_proto.TYPE_MESSAGE,
        type_name=f".{MESSAGE_FULL_NAME}",
        extendee=".transit_realtime.VehiclePosition",
    )
    return file_proto


def _register() -> FieldDescriptor:
    pool = descriptor_pool.Default()
    try:
        return pool.FindExtensionByName(EXTENSION_FULL_NAME)
    except KeyError:
        pass

    pool.AddSerializedFile(_build_file_descriptor().SerializeToString())
    # Materialise the message class so extension access can instantiate it
    message_factory.GetMessageClass(pool.FindMessageTypeByName(MESSAGE_FULL_NAME))
    return pool.FindExtensionByName(EXTENSION_FULL_NAME)


OVAPI_VEHICLE_POSITION = _register()


def vehicle_delay(vehicle: gtfs_realtime_pb2.VehiclePosition) -> Optional[int]:
    """Return the OVapi delay in seconds, or None when the extension is absent."""
    if not vehicle.HasExtension(OVAPI_VEHICLE_POSITION):
        return None
    ext = vehicle.Extensions[OVAPI_VEHICLE_POSITION]
    if not ext.HasField("delay"):
        return None
    return int(ext.delay)
