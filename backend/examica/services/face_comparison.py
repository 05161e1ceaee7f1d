from abc import ABC, abstractmethod
import asyncio
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.errors import DependencyUnavailable
from ..schemas.verification import FaceComparison

logger = logging.getLogger(__name__)


class FaceComparator(ABC):
    """External face comparison capability"""

    @abstractmethod
    async def compare(self, reference_key: str, live_image: bytes) -> FaceComparison: ...


class RekognitionFaceComparator(FaceComparator):
    """Compares the stored reference photo (S3 object) with a live capture using AWS Rekognition"""

    def __init__(self, bucket: str, region_name: str, similarity_threshold: float = 80.0, client=None):
        self.bucket = bucket
        self.region_name = region_name
        self.similarity_threshold = similarity_threshold
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("rekognition", region_name=self.region_name)
        return self._client

    def _compare_sync(self, reference_key: str, live_image: bytes) -> FaceComparison:
        try:
            response = self.client.compare_faces(
                SourceImage={"S3Object": {"Bucket": self.bucket, "Name": reference_key}},
                TargetImage={"Bytes": live_image},
                # Report every match so failed attempts still carry a similarity
                SimilarityThreshold=0,
            )
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code == "InvalidParameterException":
                return FaceComparison(success=False, error="No face detected")
            if code in ("InvalidS3ObjectException", "NoSuchKey"):
                return FaceComparison(success=False, error="No reference image on file")
            raise DependencyUnavailable("Face comparison service error") from e
        except BotoCoreError as e:
            raise DependencyUnavailable("Face comparison service unreachable") from e

        matches = response.get("FaceMatches") or []
        if not matches:
            return FaceComparison(success=False, similarity=0.0, confidence=0.0)

        best = max(matches, key=lambda match: match.get("Similarity", 0.0))
        similarity = float(best.get("Similarity", 0.0))
        confidence = float(best.get("Face", {}).get("Confidence", 0.0))
        return FaceComparison(
            similarity=similarity,
            confidence=confidence,
            success=similarity >= self.similarity_threshold,
        )

    async def compare(self, reference_key: str, live_image: bytes) -> FaceComparison:
        return await asyncio.to_thread(self._compare_sync, reference_key, live_image)
