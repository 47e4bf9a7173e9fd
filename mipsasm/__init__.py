from .assembler import (
    AsmError,
    EmptyInstruction,
    FieldOverflow,
    InstructionFormat,
    InvalidImmediate,
    InvalidRegister,
    MalformedOperandCount,
    RegisterOutOfRange,
    UnknownOpcode,
    assemble_file,
    assemble_line,
    assemble_lines,
    encode,
    format_word,
    parse_hex_immediate,
    resolve_register,
    split_memory_operand,
    tokenize,
)
