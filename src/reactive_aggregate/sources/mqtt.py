"""Change observer fed by MQTT messages.

Any message published on the watched topic counts as a change. Useful when
the database itself cannot be watched but writers announce their updates
on a broker.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, cast

import paho.mqtt.client as mqtt

from reactive_aggregate.exceptions import ObserverError
from reactive_aggregate.sources import ChangeCallbacks


def _default_client_factory(client_id: str) -> mqtt.Client:
    return mqtt.Client(
        callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv5,
    )


class MqttObserveHandle:
    """Running MQTT subscription; :meth:`stop` disconnects it."""

    def __init__(self, client: mqtt.Client, logger: logging.Logger) -> None:
        self._client: mqtt.Client | None = client
        self._logger = logger

    @property
    def is_running(self) -> bool:
        return self._client is not None

    def stop(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            self._logger.debug("MQTT disconnect requested")
            client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")


class MqttChangeObserver:
    """Threaded paho-mqtt watcher reporting each message as a ``changed`` signal.

    The message topic is used as the changed id and the raw payload is
    passed as ``{"payload": <bytes>}``. Callbacks run on the paho network
    thread; :class:`~reactive_aggregate.publication.ReactiveAggregate`
    marshals them onto its event loop.
    """

    def __init__(
        self,
        host: str,
        topic: str,
        *,
        port: int = 1883,
        client_id: str = "",
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        keepalive: int = 60,
        qos: int = 0,
        client_factory: Callable[[str], mqtt.Client] = _default_client_factory,
        logger: logging.Logger | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._topic = topic
        self._client_id = client_id
        self._username = username
        self._password = password
        self._tls = tls
        self._keepalive = keepalive
        self._qos = qos
        self._client_factory = client_factory
        self._logger = logger or logging.getLogger(__name__)

    @property
    def topic(self) -> str:
        return self._topic

    def observe_changes(self, callbacks: ChangeCallbacks) -> MqttObserveHandle:
        self._logger.debug(
            "MQTT observer start requested host=%s port=%s topic=%s",
            self._host,
            self._port,
            self._topic,
        )
        client = self._client_factory(self._client_id)
        client.enable_logger(self._logger)
        if self._username is not None:
            client.username_pw_set(self._username, self._password)
        if self._tls:
            client.tls_set()

        topic = self._topic
        qos = self._qos

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                callbacks.error(ObserverError(f"MQTT connect to {self._host} failed: {reason_code}"))
                return
            self._logger.debug("MQTT subscribing topic=%s", topic)
            c.subscribe(topic, qos=qos)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self._logger.debug("Received PUBLISH topic=%s bytes=%d", msg.topic, len(msg.payload))
            callbacks.changed(msg.topic, {"payload": msg.payload})

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()
        self._logger.debug("MQTT network loop started")
        return MqttObserveHandle(client, self._logger)
