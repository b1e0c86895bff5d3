from __future__ import annotations
import logging
import threading
import time
from typing import Callable, Optional

import cv2
import mediapipe as mp

from romcoach.pose.landmarks import LandmarkFrame

logger = logging.getLogger(__name__)


class CameraPoseSource(threading.Thread):
    """
    Webcam + MediaPipe Pose on a daemon thread. Every result overwrites the
    shared latest-frame slot via on_frame; nothing here touches session state.
    """
    def __init__(
            self,
            on_frame: Callable[[LandmarkFrame, float], None],
            camera_index: int = 0,
            on_error: Optional[Callable[[str], None]] = None,
    ):
        super().__init__(daemon=True)
        self.on_frame = on_frame
        self.camera_index = camera_index
        self.on_error = on_error
        self._stop_evt = threading.Event()
        self.cap = None
        self.pose = None

    def run(self):
        mp_pose = mp.solutions.pose

        try:
            self.cap = cv2.VideoCapture(self.camera_index)
            if not self.cap.isOpened():
                raise RuntimeError("Webcam not available")

            self.pose = mp_pose.Pose(
                model_complexity=1,
                smooth_landmarks=True,
                min_detection_confidence=0.6,
                min_tracking_confidence=0.6,
            )

            while not self._stop_evt.is_set():
                ok, frame = self.cap.read()
                if not ok:
                    time.sleep(0.01)
                    continue
                image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                image.flags.writeable = False
                res = self.pose.process(image)
                if res.pose_landmarks:
                    self.on_frame(LandmarkFrame.from_list(res.pose_landmarks.landmark), time.monotonic())

        except Exception as e:
            if self.on_error:
                self.on_error(str(e))
            else:
                logger.error("camera pose source error: %s", e)

        finally:
            if self.cap is not None:
                self.cap.release()
            if self.pose is not None:
                self.pose.close()

    def stop(self):
        self._stop_evt.set()
