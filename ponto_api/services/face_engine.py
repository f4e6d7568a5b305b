import logging
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

Image = Union[str, np.ndarray]


class FaceEngine:
    """DeepFace embeddings and anti-spoofing, plus cosine scoring in numpy."""

    MODEL_NAME = "Facenet512"
    DETECTOR_BACKEND = "opencv"

    @staticmethod
    def _deepface():
        # TensorFlow startup is slow; only capture, enroll and verify need it
        from deepface import DeepFace
        return DeepFace

    @staticmethod
    def get_embedding(image: Image) -> Optional[List[float]]:
        """Embedding of the only face in `image`; None for zero or several faces."""
        try:
            faces = FaceEngine._deepface().represent(
                img_path=image,
                model_name=FaceEngine.MODEL_NAME,
                detector_backend=FaceEngine.DETECTOR_BACKEND,
                enforce_detection=True,
            )
        except ValueError as ve:
            # enforce_detection raises when no face is found
            logger.warning("face detection failed: %s", ve)
            return None

        if len(faces or []) != 1:
            logger.warning("expected one face, found %d", len(faces or []))
            return None
        return faces[0]["embedding"]

    @staticmethod
    def check_liveness(image: Image) -> bool:
        """True when the anti-spoofing model judges the single face real."""
        try:
            faces = FaceEngine._deepface().extract_faces(
                img_path=image,
                detector_backend=FaceEngine.DETECTOR_BACKEND,
                enforce_detection=True,
                anti_spoofing=True,
            )
        except ValueError as ve:
            logger.warning("liveness check failed: %s", ve)
            return False
        return len(faces) == 1 and bool(faces[0].get("is_real"))

    @staticmethod
    def compute_similarity(emb1: Sequence[float], emb2: Sequence[float]) -> float:
        """Cosine similarity in [-1, 1]; 0.0 when either vector is null."""
        a = np.asarray(emb1, dtype=float)
        b = np.asarray(emb2, dtype=float)
        denom = np.linalg.norm(a) * np.linalg.norm(b)
        if denom == 0:
            return 0.0
        return float(np.dot(a, b) / denom)

    @staticmethod
    def rank(target: Sequence[float], gallery: Sequence[Sequence[float]]) -> Tuple[Optional[int], float]:
        """
        Index and cosine similarity of the gallery row closest to `target`,
        or (None, 0.0) for an empty gallery. Null rows score 0.
        """
        if len(gallery) == 0:
            return None, 0.0
        g = np.asarray(gallery, dtype=float)
        p = np.asarray(target, dtype=float)
        norms = np.linalg.norm(g, axis=1) * np.linalg.norm(p)
        dots = g @ p
        scores = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)
        best = int(np.argmax(scores))
        return best, float(scores[best])
