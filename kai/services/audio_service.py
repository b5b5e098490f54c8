"""
音声データ変換サービス
録音データのデコード、音声サービス向けWAVへの変換、音響特徴量の算出を行う
"""

import io
import logging

import numpy as np
import scipy.io.wavfile as wavfile
from numpy.typing import NDArray
from pydub import AudioSegment

from kai.core.audio_features import extract_features
from kai.models.schemas import AudioFeatures

logger = logging.getLogger(__name__)


class AudioService:
    """録音データを扱うサービスクラス"""

    def __init__(self) -> None:
        """初期化処理"""
        # 音声サービスに渡すWAVの設定
        self.sample_rate: int = 16000
        self.channels: int = 1
        self.sample_width: int = 2  # 16bit PCM

    @staticmethod
    def _normalize(data: NDArray) -> NDArray[np.float32]:
        """PCMサンプルを-1.0〜1.0のfloat32に正規化（多チャンネルは1チャンネル目）"""
        if data.ndim > 1:
            data = data[:, 0]
        if data.dtype == np.int16:
            return data.astype(np.float32) / 32768.0
        if data.dtype == np.int32:
            return data.astype(np.float32) / 2147483648.0
        if data.dtype == np.uint8:
            return (data.astype(np.float32) - 128.0) / 128.0
        return data.astype(np.float32)

    def decode(self, audio_data: bytes, audio_format: str = "wav") -> tuple[NDArray[np.float32], int]:
        """
        録音データをモノラルのfloatサンプルにデコード

        Args:
            audio_data: 音声データ（バイト列）
            audio_format: コンテナ形式（"wav", "webm", "mp3" など）

        Returns:
            (サンプル配列, サンプリングレート)
        """
        if audio_format == "wav":
            sample_rate, data = wavfile.read(io.BytesIO(audio_data))
            return self._normalize(np.asarray(data)), int(sample_rate)

        # WAV以外はpydub（ffmpeg）でデコード
        segment: AudioSegment = AudioSegment.from_file(io.BytesIO(audio_data), format=audio_format)
        samples = np.array(segment.get_array_of_samples())
        if segment.channels > 1:
            samples = samples.reshape((-1, segment.channels))
        scale = float(1 << (8 * segment.sample_width - 1))
        data = samples.astype(np.float32) / scale
        if data.ndim > 1:
            data = data[:, 0]
        return data, int(segment.frame_rate)

    def _resample(self, audio_data: bytes, audio_format: str) -> AudioSegment:
        """16kHz・モノラル・16bitに変換（多チャンネルはダウンミックス）"""
        segment: AudioSegment = AudioSegment.from_file(io.BytesIO(audio_data), format=audio_format)
        return (
            segment.set_frame_rate(self.sample_rate)
            .set_channels(self.channels)
            .set_sample_width(self.sample_width)
        )

    def to_pcm_16k_mono(self, audio_data: bytes, audio_format: str = "webm") -> bytes:
        """ヘッダなしの16kHz・モノラル・16bit PCMに変換"""
        return self._resample(audio_data, audio_format).raw_data

    def to_wav_16k_mono(self, audio_data: bytes, audio_format: str = "webm") -> bytes:
        """
        音声サービス向けに16kHz・モノラル・16bit PCMのWAVへ変換

        Args:
            audio_data: 音声データ（バイト列）
            audio_format: 入力のコンテナ形式

        Returns:
            WAV形式のバイト列
        """
        segment = self._resample(audio_data, audio_format)
        buffer = io.BytesIO()
        segment.export(buffer, format="wav")
        return buffer.getvalue()

    def analyze(self, audio_data: bytes, audio_format: str = "wav") -> AudioFeatures:
        """
        録音データから音響特徴量を算出

        Args:
            audio_data: 音声データ（バイト列）
            audio_format: コンテナ形式

        Returns:
            AudioFeaturesオブジェクト
        """
        samples, sample_rate = self.decode(audio_data, audio_format)
        features = extract_features(samples, sample_rate)
        logger.debug(
            "音響特徴量: %.2f秒, %dフレーム, ポーズ%d回",
            features.duration_sec,
            len(features.rms),
            features.pauses.count,
        )
        return features
