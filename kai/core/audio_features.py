"""
音響特徴量の推定
フレームごとのRMSエネルギー、自己相関による基本周波数、ポーズ（無音区間）を求め、
外部の発音評価を補う
"""

import math
from typing import Iterator, List, Sequence

import numpy as np
from numpy.typing import NDArray

from kai.models.schemas import AudioFeatures, PauseSummary

FRAME_SEC = 0.03  # 30msフレーム
ENERGY_THRESHOLD = 0.02  # 有声/無音の判定閾値
MIN_PITCH_HZ = 80.0
MAX_PITCH_HZ = 300.0
MIN_PAUSE_SEC = 0.2


def frame_layout(sample_rate: int) -> tuple[int, int]:
    """
    フレーム長とホップ長（サンプル数）を返す

    Args:
        sample_rate: サンプリングレート（Hz）

    Returns:
        (フレーム長, ホップ長)。ホップはフレーム長の半分（50%オーバーラップ）
    """
    frame_size = int(math.floor(sample_rate * FRAME_SEC))
    return frame_size, frame_size // 2


def iter_frames(samples: NDArray[np.floating], frame_size: int, hop: int) -> Iterator[NDArray[np.floating]]:
    """フレームを順に返す。末尾の端数フレームはゼロ埋めせずに捨てる"""
    if frame_size <= 0 or hop <= 0:
        return
    start = 0
    while start + frame_size <= len(samples):
        yield samples[start:start + frame_size]
        start += hop


def frame_rms(frame: NDArray[np.floating]) -> float:
    """フレームの二乗平均平方根"""
    return float(np.sqrt(np.mean(frame * frame)))


def estimate_pitch(frame: NDArray[np.floating], sample_rate: int) -> float:
    """
    自己相関による単純なピッチ推定（80-300Hz）

    ラグを小さい順に走査し、正規化しない自己相関和が最初に最大となったラグを採用する。

    Args:
        frame: 1フレーム分のサンプル
        sample_rate: サンプリングレート（Hz）

    Returns:
        推定周波数（Hz）。正の相関が見つからない場合は0
    """
    min_lag = int(math.floor(sample_rate / MAX_PITCH_HZ))
    max_lag = int(math.floor(sample_rate / MIN_PITCH_HZ))
    n = len(frame)

    best_lag = -1
    best = 0.0
    for lag in range(min_lag, max_lag + 1):
        if lag >= n:
            total = 0.0
        else:
            total = float(np.dot(frame[: n - lag], frame[lag:]))
        if total > best:
            best = total
            best_lag = lag

    if best_lag > 0:
        return sample_rate / best_lag
    return 0.0


def detect_pauses(rms_values: Sequence[float], hop_sec: float) -> PauseSummary:
    """
    低エネルギーフレームが連続する区間のうち0.2秒以上のものをポーズとして数える

    Args:
        rms_values: フレームごとのRMS
        hop_sec: 1ホップの長さ（秒）

    Returns:
        ポーズ数と平均長（ミリ秒、四捨五入）
    """
    durations: List[float] = []
    current = 0.0
    for value in rms_values:
        if value < ENERGY_THRESHOLD:
            current += hop_sec
        elif current > 0:
            if current >= MIN_PAUSE_SEC:
                durations.append(current)
            current = 0.0
    # 末尾まで続いた無音区間
    if current >= MIN_PAUSE_SEC:
        durations.append(current)

    if not durations:
        return PauseSummary(count=0, avg_ms=0)
    avg_ms = sum(durations) / len(durations) * 1000
    return PauseSummary(count=len(durations), avg_ms=int(math.floor(avg_ms + 0.5)))


def extract_features(samples: Sequence[float] | NDArray[np.floating], sample_rate: int) -> AudioFeatures:
    """
    デコード済みのモノラル音声から特徴量を算出

    Args:
        samples: 音声サンプル（-1.0〜1.0、多チャンネルの場合は1チャンネル目を使う）
        sample_rate: サンプリングレート（Hz）

    Returns:
        AudioFeaturesオブジェクト

    Raises:
        ValueError: サンプリングレートが正でない場合
    """
    if sample_rate <= 0:
        raise ValueError(f"サンプリングレートが不正です: {sample_rate}")

    data: NDArray[np.float64] = np.asarray(samples, dtype=np.float64)
    if data.ndim > 1:
        data = data[:, 0]

    frame_size, hop = frame_layout(sample_rate)
    rms_values: List[float] = []
    pitch_values: List[float] = []
    for frame in iter_frames(data, frame_size, hop):
        energy = frame_rms(frame)
        rms_values.append(energy)
        # 有声フレームのみピッチを推定
        if energy > ENERGY_THRESHOLD:
            pitch_values.append(estimate_pitch(frame, sample_rate))
        else:
            pitch_values.append(0.0)

    return AudioFeatures(
        duration_sec=len(data) / sample_rate,
        sample_rate=sample_rate,
        rms=rms_values,
        pitch_hz=pitch_values,
        pauses=detect_pauses(rms_values, hop / sample_rate),
    )
