"""
Servicio de blob store (objetos binarios grandes) sobre S3 / Cloudflare R2.

Este modulo encapsula TODA la comunicacion con el bucket. Ningun otro
archivo deberia llamar a boto3 directamente; todo pasa por BlobStore.

S3 y R2:
--------
R2 implementa la API de S3, asi que el mismo cliente de boto3 sirve para
los dos. La unica diferencia es el `endpoint_url`:

    AWS S3: None (boto3 resuelve el endpoint por region)
    R2:     https://<account_id>.r2.cloudflarestorage.com

Estructura de keys:
    uploads/{epoch_millis}-{random_id}.{ext}   -> imagenes subidas

Timeouts:
---------
botocore.config.Config define timeouts de conexion y lectura. Asi ninguna
llamada bloquea indefinidamente; si se agotan, boto3 lanza una excepcion
que `guarded()` convierte en StorageError.

Patron de diseno: Inyeccion de dependencias
-------------------------------------------
El constructor acepta un `client` opcional. En tests pasamos un cliente
creado dentro de `mock_aws()` (moto) en vez del cliente real.
"""

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError


class BlobStore:
    """
    Operaciones sobre el bucket de assets.

    Atributos:
        client: Cliente de boto3 para S3.
        bucket (str): Nombre del bucket.
        public_base_url (str): Base de las URLs publicas que devolvemos.
    """

    def __init__(self, settings, client=None):
        if client is None:
            client = boto3.client(
                "s3",
                region_name=settings.AWS_REGION,
                endpoint_url=settings.BLOB_ENDPOINT_URL or None,
                config=Config(
                    connect_timeout=settings.STORE_TIMEOUT_SECONDS,
                    read_timeout=settings.STORE_TIMEOUT_SECONDS,
                    retries={"max_attempts": 2},
                ),
            )
        self.client = client
        self.bucket = settings.S3_BUCKET
        self.public_base_url = settings.PUBLIC_BASE_URL.rstrip("/")

    def put(self, key: str, data: bytes, content_type: str, metadata: dict | None = None) -> str:
        """
        Sube un objeto al bucket.

        El Content-Type se guarda en el objeto para que la CDN lo sirva
        con el tipo correcto sin tener que re-detectarlo.
        """
        params = {"Bucket": self.bucket, "Key": key, "Body": data, "ContentType": content_type}
        # S3 guarda la metadata como headers x-amz-meta-*: solo strings.
        if metadata:
            params["Metadata"] = {k: str(v) for k, v in metadata.items()}
        self.client.put_object(**params)
        return key

    def get(self, key: str) -> tuple[bytes, str] | None:
        """
        Descarga un objeto completo.

        Retorna:
            (bytes, content_type) o None si el objeto no existe.
            Cualquier otro error (permisos, red) se propaga.
        """
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return None
            raise
        return response["Body"].read(), response.get("ContentType", "application/octet-stream")

    def delete(self, key: str) -> None:
        # delete_object es idempotente: no falla si el objeto no existe.
        self.client.delete_object(Bucket=self.bucket, Key=key)

    def url_for(self, key: str) -> str:
        """URL publica servida por la ruta /cdn/images/{key}."""
        return f"{self.public_base_url}/cdn/images/{key}"
