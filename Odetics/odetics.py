# Odetics/odetics.py
"""Odetics superset of Sony 9-pin (EVS / Louth style servers). Opcodes only; no reply parsing."""

from typing import Iterable, List, Optional

from VTR422.protocol import CurrentTimeSenseFlag, Timecode
from VTR422.vtr_core import VTR422


class Odetics:
    # ---- fixed (cmd1, cmd2) ----
    PREVIEW_IN_RESET                    = (0xA0, 0x06)
    PREVIEW_OUT_RESET                   = (0xA0, 0x07)
    LIST_FIRST_ID                       = (0xA0, 0x14)  # reply 80 14 = no clip, 88 14 = first ID
    LIST_NEXT_ID                        = (0xA0, 0x15)
    LONGEST_CONTIGUOUS_AVAILABLE_STORAGE= (0xA0, 0x1C)
    DEVICE_ID_REQUEST                   = (0xA0, 0x21)
    ERASE_SEGMENT                       = (0xA8, 0x11)  # often NAKed
    LIST_CLIP_TC                        = (0xA8, 0x16)  # first frame TC + duration
    LIST_CLIP_TC_EVS                    = (0xA8, 0x17)  # TC + machine number
    ID_STATUS_REQUEST                   = (0xA8, 0x18)
    SET_DEVICE_ID                       = (0xA8, 0x20)
    GET_EVENT                           = (0xB0, 0x00)  # 90 00 = no event, 9X 00 = event
    SET_TARGET_MACHINE                  = (0xB1, 0x01)
    SET_ID_FOR_DATA                     = (0xB8, 0x02)  # stores clip ID for SET_DATA
    SET_DATA                            = (0xBC, 0x02)
    GET_DATA                            = (0xB8, 0x03)  # reply 9C 03
    SET_ID_EVS_STATUS                   = (0xBA, 0x05)
    LIST_CLIP_PROTECT_TC                = (0xB8, 0x06)
    GET_KEYWORD                         = (0xB9, 0x07)
    SET_KEYWORD_1                       = (0xB8, 0x08)  # clip ID used by SET_KEYWORD_2
    SET_KEYWORD_2                       = (0xBD, 0x08)
    ID_CONVERSION                       = (0xB9, 0x09)  # data1: ID_LSM_TO_LOUTH / ID_LOUTH_TO_LSM
    NET_MOVE_CLIP_ID_VDCP               = (0xB9, 0x0A)
    NET_MOVE_CLIP_ID_LSM                = (0xB9, 0x0B)  # data1: NET_SOURCE / NET_TARGET
    NET_COPY_CLIP_ID_VDCP_1             = (0xB8, 0x0C)
    NET_COPY_CLIP_ID_VDCP_2             = (0xB9, 0x0C)
    NET_COPY_CLIP_ID_LSM                = (0xB9, 0x0D)  # data1: NET_SOURCE / NET_TARGET
    GET_FIRST_MACHINE                   = (0xB0, 0x0E)
    GET_NEXT_MACHINE                    = (0xB0, 0x0F)
    SET_OPTIONS                         = (0xB4, 0x10)
    GET_OPTIONS                         = (0xB0, 0x11)
    LIVE                                = (0xB8, 0x13)

    # ---- cmd2 of commands whose cmd1 low nibble varies (AX / BX) ----
    RECORD_CUE_UP_WITH_DATA = 0x02
    PREVIEW_IN_PRESET       = 0x04
    PREVIEW_OUT_PRESET      = 0x05
    ERASE_ID                = 0x10
    MAKE_CLIP               = 0x04
    SET_IN_OUT              = 0x12

    # ---- data1 selectors ----
    ID_LSM_TO_LOUTH = 0x04
    ID_LOUTH_TO_LSM = 0x05
    NET_SOURCE      = 0x53
    NET_TARGET      = 0x54

    def __init__(self, vtr: VTR422):
        self.vtr = vtr

    def send(self, cmd1: int, cmd2: int, data: Optional[Iterable[int]] = None) -> None:
        self.vtr.send_command(cmd1, cmd2, data)

    raw = send

    def _fixed(self, op, data: Iterable[int] = ()) -> None:
        cmd1, cmd2 = op
        self.send(cmd1, cmd2, list(data))

    def timecode_auto(self) -> None:
        self.vtr.current_time_sense(CurrentTimeSenseFlag.AUTO)

    def poll_timecode(self, interval: float = 0.25, duration: float = 3.0) -> List[Timecode]:
        return self.vtr.poll_timecode(interval=interval, duration=duration, flag=CurrentTimeSenseFlag.AUTO)

    # ---------- A0 / A8 ----------
    def preview_in_reset(self) -> None: self._fixed(self.PREVIEW_IN_RESET)
    def preview_out_reset(self) -> None: self._fixed(self.PREVIEW_OUT_RESET)
    def list_first_id(self) -> None: self._fixed(self.LIST_FIRST_ID)
    def list_next_id(self) -> None: self._fixed(self.LIST_NEXT_ID)
    def longest_contiguous_available_storage(self) -> None: self._fixed(self.LONGEST_CONTIGUOUS_AVAILABLE_STORAGE)
    def device_id_request(self) -> None: self._fixed(self.DEVICE_ID_REQUEST)
    def erase_segment(self) -> None: self._fixed(self.ERASE_SEGMENT)
    def list_clip_tc(self) -> None: self._fixed(self.LIST_CLIP_TC)
    def list_clip_tc_evs(self) -> None: self._fixed(self.LIST_CLIP_TC_EVS)
    def id_status_request(self) -> None: self._fixed(self.ID_STATUS_REQUEST)
    def set_device_id(self, *id_bytes: int) -> None: self._fixed(self.SET_DEVICE_ID, id_bytes)

    # ---------- AX variants (cmd1 low nibble chosen by caller) ----------
    def record_cue_up_with_data(self, cmd1_variant: int = 0xA0, *data: int) -> None:
        self.send(cmd1_variant & 0xFF, self.RECORD_CUE_UP_WITH_DATA, list(data))

    def preview_in_preset(self, cmd1_variant: int = 0xA0, *data: int) -> None:
        self.send(cmd1_variant & 0xFF, self.PREVIEW_IN_PRESET, list(data))

    def preview_out_preset(self, cmd1_variant: int = 0xA0, *data: int) -> None:
        self.send(cmd1_variant & 0xFF, self.PREVIEW_OUT_PRESET, list(data))

    def erase_id(self, cmd1_variant: int = 0xA0, *id_bytes: int) -> None:
        self.send(cmd1_variant & 0xFF, self.ERASE_ID, list(id_bytes))

    # ---------- B0..BD ----------
    def get_event(self) -> None: self._fixed(self.GET_EVENT)
    def set_target_machine(self, *data: int) -> None: self._fixed(self.SET_TARGET_MACHINE, data)
    def set_id_for_data(self, *id_bytes: int) -> None: self._fixed(self.SET_ID_FOR_DATA, id_bytes)
    def set_data(self, *data: int) -> None: self._fixed(self.SET_DATA, data)
    def get_data(self, *id_bytes: int) -> None: self._fixed(self.GET_DATA, id_bytes)

    def make_clip(self, cmd1_variant: int = 0xB0, *data: int) -> None:
        self.send(cmd1_variant & 0xFF, self.MAKE_CLIP, list(data))

    def set_id_evs_status(self, *data: int) -> None: self._fixed(self.SET_ID_EVS_STATUS, data)
    def list_clip_protect_tc(self, *id_bytes: int) -> None: self._fixed(self.LIST_CLIP_PROTECT_TC, id_bytes)
    def get_keyword(self, *id_bytes: int) -> None: self._fixed(self.GET_KEYWORD, id_bytes)
    def set_keyword_1(self, *id_bytes: int) -> None: self._fixed(self.SET_KEYWORD_1, id_bytes)
    def set_keyword_2(self, *data: int) -> None: self._fixed(self.SET_KEYWORD_2, data)

    def id_lsm_to_louth(self, *data: int) -> None:
        self._fixed(self.ID_CONVERSION, (self.ID_LSM_TO_LOUTH, *data))

    def id_louth_to_lsm(self, *data: int) -> None:
        self._fixed(self.ID_CONVERSION, (self.ID_LOUTH_TO_LSM, *data))

    def net_move_clip_id_vdcp(self, *data: int) -> None: self._fixed(self.NET_MOVE_CLIP_ID_VDCP, data)
    def net_move_clip_id_lsm_source(self, *data: int) -> None: self._fixed(self.NET_MOVE_CLIP_ID_LSM, (self.NET_SOURCE, *data))
    def net_move_clip_id_lsm_target(self, *data: int) -> None: self._fixed(self.NET_MOVE_CLIP_ID_LSM, (self.NET_TARGET, *data))
    def net_copy_clip_id_vdcp_source(self, *data: int) -> None: self._fixed(self.NET_COPY_CLIP_ID_VDCP_1, data)
    def net_copy_clip_id_vdcp_target(self, *data: int) -> None: self._fixed(self.NET_COPY_CLIP_ID_VDCP_2, data)
    def net_copy_clip_id_lsm_source(self, *data: int) -> None: self._fixed(self.NET_COPY_CLIP_ID_LSM, (self.NET_SOURCE, *data))
    def net_copy_clip_id_lsm_target(self, *data: int) -> None: self._fixed(self.NET_COPY_CLIP_ID_LSM, (self.NET_TARGET, *data))

    def get_first_machine(self) -> None: self._fixed(self.GET_FIRST_MACHINE)
    def get_next_machine(self) -> None: self._fixed(self.GET_NEXT_MACHINE)
    def set_options(self, *data: int) -> None: self._fixed(self.SET_OPTIONS, data)
    def get_options(self, *data: int) -> None: self._fixed(self.GET_OPTIONS, data)

    def set_in_out(self, cmd1_variant: int = 0xB0, *data: int) -> None:
        self.send(cmd1_variant & 0xFF, self.SET_IN_OUT, list(data))

    def live(self, *data: int) -> None: self._fixed(self.LIVE, data)
