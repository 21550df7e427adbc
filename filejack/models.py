from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ToolArguments(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PathArguments(ToolArguments):
    path: str = Field(..., description="Path to the target file or directory")

    @field_validator("path")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("path must not be empty")
        return v


class ReadFileArguments(PathArguments):
    pass


class WriteFileArguments(PathArguments):
    content: str = Field(..., description="Text content to write (UTF-8)")


class AppendFileArguments(PathArguments):
    content: str = Field(..., description="Text content to append (UTF-8)")


class DeleteFileArguments(PathArguments):
    pass


class TransferArguments(ToolArguments):
    source: str = Field(..., alias="from", min_length=1, description="Source path")
    destination: str = Field(..., alias="to", min_length=1, description="Destination path")


class MoveFileArguments(TransferArguments):
    pass


class CopyFileArguments(TransferArguments):
    pass


class GetMetadataArguments(PathArguments):
    pass


class FileExistsArguments(PathArguments):
    pass


class ListDirectoryArguments(PathArguments):
    recursive: bool = Field(False, description="Walk subdirectories as well")


class CreateDirectoryArguments(PathArguments):
    recursive: bool = Field(False, description="Create missing parent directories")


class RemoveDirectoryArguments(PathArguments):
    recursive: bool = Field(False, description="Remove the directory and everything below it")


class ReadLinesArguments(PathArguments):
    start_line: Optional[int] = Field(None, ge=1, description="First line to return (1-based)")
    end_line: Optional[int] = Field(None, ge=1, description="Last line to return (inclusive)")
    tail: Optional[int] = Field(None, ge=0, description="Return only the last N lines")


class SearchFilesArguments(PathArguments):
    pattern: str = Field(..., min_length=1, description="Shell-style pattern matched against file names")
    recursive: bool = Field(True, description="Search subdirectories as well")
    max_results: Optional[int] = Field(None, ge=0, description="Stop after this many matches")


class GrepFileArguments(PathArguments):
    pattern: str = Field(..., min_length=1, description="Regular expression searched line by line")
    max_matches: Optional[int] = Field(None, ge=0, description="Stop after this many matches")
    context_lines: int = Field(0, ge=0, description="Lines of context before and after each match")


class FileMetadata(BaseModel):
    size: int
    is_file: bool
    is_dir: bool
    is_symlink: bool
    modified: Optional[int] = None
    created: Optional[int] = None
    readonly: bool


class DirectoryEntry(BaseModel):
    path: str
    name: str
    is_file: bool
    is_dir: bool
    size: Optional[int] = None


class GrepMatch(BaseModel):
    line_number: int
    line_content: str
    context_before: List[str] = Field(default_factory=list)
    context_after: List[str] = Field(default_factory=list)
