from sly import Lexer  # Librería SLY para análisis léxico
import argparse  # Para la línea de comandos
import enum
import json  # Para cargar archivos JSON con instrucciones
import os    # Para manejo de rutas de archivos
import re
import sys
from types import MappingProxyType

"""
Ensamblador MIPS (subconjunto)
Este programa convierte código assembly MIPS a código máquina de 32 bits.
Soporta:
- Tipo R: ADD, SUB, AND, OR, SLT, JR
- Tipo I: LW, SW, BEQ, ADDI, ORI, LUI
- Tipo J: J (con dirección literal, sin etiquetas)
- Registros simbólicos ($t1) o canónicos ($r9)
- Inmediatos solo en hexadecimal (0x14)
"""

# ========================
#  ERRORES
# ========================
class AsmError(Exception):
    """
    Error base del ensamblador.

    ``token`` es el campo que provocó el error (si se conoce) y ``line_num``
    la línea del archivo fuente; la completa el driver al propagar el error.
    """
    def __init__(self, message, token=None):
        super().__init__(message)
        self.message = message
        self.token = token
        self.line_num = None

    def __str__(self):
        if self.line_num is None:
            return self.message
        return f"Línea {self.line_num}: {self.message}"


class EmptyInstruction(AsmError, SyntaxError):
    pass


class MalformedOperandCount(AsmError, SyntaxError):
    def __init__(self, mnemonic, expected, found):
        super().__init__(
            f"Instrucción '{mnemonic}' requiere {expected} campos, encontrados {found}",
            mnemonic,
        )
        self.expected = expected
        self.found = found


class UnknownOpcode(AsmError, SyntaxError):
    def __init__(self, mnemonic):
        super().__init__(f"'{mnemonic}' no es un OPCODE válido", mnemonic)


class InvalidRegister(AsmError, ValueError):
    pass


class RegisterOutOfRange(AsmError, ValueError):
    pass


class InvalidImmediate(AsmError, ValueError):
    pass


class FieldOverflow(AsmError, ValueError):
    pass

# ========================
#  ISA (Cargar JSONs con definiciones de instrucciones)
# ========================
# Obtener la ruta base del directorio actual
base_dir = os.path.dirname(os.path.abspath(__file__))


def _load_codes(filename):
    """
    Carga una tabla mnemónico -> códigos. Los códigos vienen en binario
    ("100000") y se convierten a enteros.
    """
    with open(os.path.join(base_dir, filename), encoding="utf-8") as f:
        table = json.load(f)
    return MappingProxyType({
        mnemonic: tuple(int(code, 2) for code in info)
        for mnemonic, info in table.items()
    })


class InstructionFormat(enum.Enum):
    R = "R"  # Registro-Registro
    I = "I"  # Inmediato
    J = "J"  # Salto


# Cada archivo contiene las instrucciones de un tipo específico
# R: (opcode, funct)   I: (opcode,)   J: (opcode,)
ISA = MappingProxyType({
    InstructionFormat.R: _load_codes("Rtype.json"),
    InstructionFormat.I: _load_codes("Itype.json"),
    InstructionFormat.J: _load_codes("Jtype.json"),
})

# Mapeo de nombres simbólicos a la forma canónica: $t1 -> $r9
with open(os.path.join(base_dir, "REGnames.json"), encoding="utf-8") as f:
    REGISTER_NAMES = MappingProxyType(json.load(f))

NUM_REGISTERS = 32

# Distribución de bits de cada formato, del bit más significativo al menos
LAYOUTS = MappingProxyType({
    InstructionFormat.R: (("opcode", 6), ("rs", 5), ("rt", 5), ("rd", 5), ("shamt", 5), ("funct", 6)),
    InstructionFormat.I: (("opcode", 6), ("rs", 5), ("rt", 5), ("immediate", 16)),
    InstructionFormat.J: (("opcode", 6), ("address", 26)),
})

REGISTER_RE = re.compile(r'\$r([0-9]+)')
HEX_RE = re.compile(r'0x[0-9A-Fa-f]+')

# ========================
#  LEXER (Análisis Léxico)
# ========================
class FieldLexer(Lexer):
    """
    Separa una línea en campos. Cada coma o espacio es un delimitador;
    los campos se normalizan a minúsculas.
    """
    tokens = { 'FIELD' }
    ignore = ' ,'

    @_(r'[^ ,]+')
    def FIELD(self, t):
        t.value = t.value.lower()
        return t


def tokenize(line):
    """Devuelve la lista de campos de ``line`` (mnemónico primero)."""
    return [tok.value for tok in FieldLexer().tokenize(line)]

# ========================
#  REGISTROS E INMEDIATOS
# ========================
def resolve_register(token):
    """
    Convierte un registro ($t1 o $r9) a su número (0-31).

    Los nombres simbólicos se sustituyen primero por su forma canónica $rN.
    """
    canonical = REGISTER_NAMES.get(token, token)
    m = REGISTER_RE.fullmatch(canonical)
    if not m:
        raise InvalidRegister(f"Registro '{token}' no encontrado", token)
    index = int(m.group(1))
    if not (0 <= index < NUM_REGISTERS):
        raise RegisterOutOfRange(
            f"Registro '{token}' no es uno de los {NUM_REGISTERS} registros disponibles (rango: $r0-$r31)",
            token,
        )
    return index


def parse_hex_immediate(token, bits=16):
    """
    Convierte un literal hexadecimal (0x...) a entero sin signo.

    Los valores que no caben en ``bits`` bits se rechazan, no se truncan.
    """
    if not HEX_RE.fullmatch(token):
        raise InvalidImmediate(f"'{token}' no es un valor hexadecimal válido", token)
    value = int(token, 16)
    if value >= 1 << bits:
        raise InvalidImmediate(f"Inmediato {token} fuera de rango ({bits} bits)", token)
    return value


def split_memory_operand(token):
    """
    Separa un operando de memoria offset(base) en (offset, base).

    Lo que sigue al primer ')' se ignora. Sin '(' todo es offset y la base
    queda vacía.
    """
    offset = ""
    base = ""
    capture_base = False
    for ch in token:
        if ch == '(':
            capture_base = True
            continue
        elif ch == ')':
            break
        if capture_base:
            base += ch
        else:
            offset += ch
    return offset, base

# ========================
#  EMPAQUETADO DE CAMPOS
# ========================
def pack_fields(layout, **fields):
    """
    Compone una palabra a partir de campos con nombre. Los campos omitidos
    valen 0; un valor que no cabe en su ancho es un error.
    """
    names = {name for name, width in layout}
    unknown = set(fields) - names
    if unknown:
        raise ValueError(f"Campos desconocidos: {', '.join(sorted(unknown))}")

    word = 0
    for name, width in layout:
        value = fields.get(name, 0)
        if not (0 <= value < (1 << width)):
            raise FieldOverflow(f"Valor {value} no cabe en el campo {name} ({width} bits)")
        word = (word << width) | value
    return word


def unpack_fields(layout, word):
    """Inverso de pack_fields: devuelve {campo: valor} en orden del layout."""
    values = {}
    for name, width in reversed(layout):
        values[name] = word & ((1 << width) - 1)
        word >>= width
    return {name: values[name] for name, width in layout}


def instruction_format(mnemonic):
    """Devuelve el formato (R, I o J) al que pertenece ``mnemonic``."""
    for fmt, table in ISA.items():
        if mnemonic in table:
            return fmt
    raise UnknownOpcode(mnemonic)


def decode_fields(word):
    """Identifica el formato de una palabra por su opcode y separa sus campos."""
    opcode = word >> 26
    if opcode == 0:
        fmt = InstructionFormat.R
    elif opcode in {info[0] for info in ISA[InstructionFormat.J].values()}:
        fmt = InstructionFormat.J
    else:
        fmt = InstructionFormat.I
    return fmt, unpack_fields(LAYOUTS[fmt], word)

# ========================
#  CODIFICACIÓN
# ========================
def encode(fields):
    """
    Convierte los campos de una instrucción a código máquina de 32 bits.

    Args:
        fields (list): Campos en minúsculas; el primero es el mnemónico

    Returns:
        int: Palabra de 32 bits

    Formatos:
    - R: opcode[31:26] | rs[25:21] | rt[20:16] | rd[15:11] | shamt[10:6] | funct[5:0]
    - I: opcode[31:26] | rs[25:21] | rt[20:16] | immediate[15:0]
    - J: opcode[31:26] | address[25:0]
    """
    if len(fields) < 2:
        raise EmptyInstruction(f"Se requieren al menos 2 campos, encontrados {len(fields)}")

    mnemonic = fields[0]
    fmt = instruction_format(mnemonic)
    layout = LAYOUTS[fmt]

    # ===== INSTRUCCIONES TIPO R =====
    if fmt is InstructionFormat.R:
        opcode, funct = ISA[fmt][mnemonic]

        if mnemonic == "jr":
            # JR rs: el único operando es el registro fuente
            if len(fields) != 2:
                raise MalformedOperandCount(mnemonic, 2, len(fields))
            return pack_fields(layout, opcode=opcode, rs=resolve_register(fields[1]), funct=funct)

        if len(fields) != 4:
            raise MalformedOperandCount(mnemonic, 4, len(fields))
        # op rd, rs, rt
        return pack_fields(
            layout,
            opcode=opcode,
            rd=resolve_register(fields[1]),
            rs=resolve_register(fields[2]),
            rt=resolve_register(fields[3]),
            funct=funct,
        )

    # ===== INSTRUCCIONES TIPO I =====
    if fmt is InstructionFormat.I:
        opcode, = ISA[fmt][mnemonic]

        if mnemonic in ("lw", "sw"):
            # op rt, offset(base)
            if len(fields) < 3:
                raise MalformedOperandCount(mnemonic, "al menos 3", len(fields))
            offset, base = split_memory_operand(fields[2])
            return pack_fields(
                layout,
                opcode=opcode,
                rt=resolve_register(fields[1]),
                rs=resolve_register(base),
                immediate=parse_hex_immediate(offset),
            )

        if mnemonic == "lui":
            # LUI rt, immediate: el valor se guarda tal cual, rs = 0
            if len(fields) != 3:
                raise MalformedOperandCount(mnemonic, 3, len(fields))
            return pack_fields(
                layout,
                opcode=opcode,
                rt=resolve_register(fields[1]),
                immediate=parse_hex_immediate(fields[2]),
            )

        # op rt, rs, immediate
        if len(fields) != 4:
            raise MalformedOperandCount(mnemonic, 4, len(fields))
        return pack_fields(
            layout,
            opcode=opcode,
            rt=resolve_register(fields[1]),
            rs=resolve_register(fields[2]),
            immediate=parse_hex_immediate(fields[3]),
        )

    # ===== INSTRUCCIONES TIPO J =====
    # Sin tabla de etiquetas: la dirección es un literal de 26 bits
    opcode, = ISA[fmt][mnemonic]
    if len(fields) != 2:
        raise MalformedOperandCount(mnemonic, 2, len(fields))
    address = parse_hex_immediate(fields[1], bits=26)
    return pack_fields(layout, opcode=opcode, address=address)

# ========================
#  DRIVER
# ========================
def assemble_line(line, verbose=False):
    """Ensambla una línea; devuelve None si la línea no tiene campos."""
    fields = tokenize(line)
    if verbose:
        print("Campos: " + " | ".join(fields))
    if not fields:
        return None
    return encode(fields)


def assemble_lines(lines, verbose=False):
    """
    Ensambla una secuencia de líneas en orden.

    El primer error detiene el ensamblado; se propaga con el número de
    línea (``line_num``) ya asignado.
    """
    machine_code = []
    for lineno, raw in enumerate(lines, start=1):
        try:
            word = assemble_line(raw.rstrip("\r\n"), verbose)
        except AsmError as e:
            e.line_num = lineno
            raise
        if word is not None:
            machine_code.append(word)
    return machine_code


def format_word(word):
    return f"{word:08x} "


def write_hex(words, path):
    # Archivo hexadecimal (una palabra por línea)
    with open(path, "w", encoding="utf-8") as f:
        for word in words:
            f.write(format_word(word) + "\n")


def write_bin(words, path):
    # Archivo binario en formato texto (32 bits por línea)
    with open(path, "w", encoding="utf-8") as f:
        for word in words:
            f.write(f"{word:032b}\n")


def listing(words):
    """Genera una línea por palabra: dirección, hex, binario y campos."""
    for i, word in enumerate(words):
        fmt, fields = decode_fields(word)
        decoded = " ".join(f"{name}={value}" for name, value in fields.items())
        yield f"0x{i*4:04x}: 0x{word:08x} | {word:032b} | {fmt.value}: {decoded}"


def assemble_file(source, output="output.txt", bin_output=None, verbose=False):
    """
    Ensambla ``source`` y escribe el resultado en ``output``.

    Si hay un error no se escribe ningún archivo.
    """
    with open(source, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()

    machine_code = assemble_lines(lines, verbose)

    write_hex(machine_code, output)
    if bin_output:
        write_bin(machine_code, bin_output)
    return machine_code

# ========================
#  FUNCIÓN PRINCIPAL
# ========================
def main(argv=None):
    """
    Función principal del ensamblador MIPS.

    Devuelve el código de salida: 0 si todo fue bien, 1 si hay un error en
    el código fuente y 2 si falla la lectura o escritura de archivos.
    """
    parser = argparse.ArgumentParser(description="Ensamblador MIPS (subconjunto)")
    parser.add_argument("source", nargs="?", default="ejemplo.asm", help="Archivo assembly de entrada")
    parser.add_argument("-o", "--output", default="output.txt", help="Archivo hexadecimal de salida")
    parser.add_argument("--bin", dest="bin_output", help="Archivo binario (texto) de salida")
    parser.add_argument("-v", "--verbose", action="store_true", help="Mostrar los campos de cada línea")
    args = parser.parse_args(argv)

    print("=== Ensamblador MIPS ===")
    try:
        machine_code = assemble_file(args.source, args.output, args.bin_output, args.verbose)
    except FileNotFoundError as e:
        if e.filename == args.source:
            print(f"Error: No se encontró el archivo '{args.source}'", file=sys.stderr)
        else:
            print(f"Error escribiendo archivo '{e.filename}': {e.strerror}", file=sys.stderr)
        return 2
    except UnicodeDecodeError as e:
        print(f"Error leyendo archivo '{args.source}': {e}", file=sys.stderr)
        return 2
    except AsmError as e:
        print(f"Error de validación: {e}", file=sys.stderr)
        print("El ensamblado se detiene debido a errores en el código fuente.", file=sys.stderr)
        return 1

    print(f"Archivo '{args.output}' generado")
    if args.bin_output:
        print(f"Archivo '{args.bin_output}' generado (formato texto binario)")

    print("\n=== CÓDIGO MÁQUINA ===")
    for line in listing(machine_code):
        print(line)

    print(f"\nEnsamblado completado exitosamente!")
    print(f"Total: {len(machine_code)} instrucciones ({len(machine_code)*4} bytes)")
    return 0

# ===== PUNTO DE ENTRADA =====
if __name__ == "__main__":
    sys.exit(main())
