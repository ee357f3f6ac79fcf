"""Routes exposed by the alignment worker's HTTP server."""

from __future__ import annotations

# Long-running operations: start call + status call.
ALIGN_FILES = "/alignFiles"
ALIGNMENT_STATUS = "/alignmentStatus"
OPEN_FILE = "/openFile"
LOADING_STATUS = "/loadingStatus"
SAVE_FILE = "/saveFile"
SAVING_STATUS = "/savingStatus"

# Document lifecycle.
CLOSE_FILE = "/closeFile"
RENAME_FILE = "/renameFile"
GET_FILE_INFO = "/getFileInfo"
GET_ROWS = "/getRows"

# Mutations answered synchronously.
REPLACE_TEXT = "/replaceText"
SAVE_DATA = "/saveData"
SPLIT_SEGMENT = "/splitSegment"
SEGMENT_DOWN = "/segmentDown"
SEGMENT_UP = "/segmentUp"
MERGE_NEXT = "/mergeNext"
REMOVE_SEGMENT = "/removeSegment"
SET_LANGUAGES = "/setLanguages"
REMOVE_TAGS = "/removeTags"
REMOVE_DUPLICATES = "/removeDuplicates"
TOGGLE_MANUAL_MARK = "/toggleManualMark"
MOVE_TARGET_UP = "/moveTargetUp"
MOVE_TARGET_DOWN = "/moveTargetDown"

# Exports.
EXPORT_TMX = "/exportTMX"
EXPORT_CSV = "/exportCSV"
EXPORT_EXCEL = "/exportExcel"

# Lookups.
GET_LANGUAGES = "/getLanguages"
GET_TYPES = "/getTypes"
GET_CHARSETS = "/getCharsets"
GET_FILE_TYPE = "/getFileType"
SYSTEM_INFO = "/systemInfo"

# AI review.
SET_CLAUDE_API_KEY = "/setClaudeAPIKey"
ESTIMATE_AI_COST = "/estimateAICost"
IMPROVE_WITH_AI = "/improveWithAI"

STATUS_FIELD = "status"
REASON_FIELD = "reason"
SUCCESS = "Success"
ERROR = "Error"
