"""Tests for reading declarations through libclang."""

import re

import pytest

from ffigen.comments import (
    clean_description,
)
from ffigen.ir import (
    ByValueType,
    Constant,
    ConstantArrayType,
    Enum,
    FunctionOrCallback,
    Name,
    PointerType,
    PrimitiveType,
    StringType,
    StructOrUnion,
    UnknownType,
)
from ffigen.reader import (
    method_name,
)
from ffigen.resolver import (
    UnsupportedTypeError,
    declaration_key,
)

# Mark all tests in this module as requiring libclang
pytestmark = pytest.mark.libclang


class TestEnums:
    def test_implicit_values(self, read_header):
        index = read_header("enum Color { RED, GREEN, BLUE };").index
        (enum,) = index.enums
        assert enum.name.raw == "Color"
        assert [(c.name.raw, c.value) for c in enum.constants] == [("RED", 0), ("GREEN", 1), ("BLUE", 2)]

    def test_shift_then_increment(self, read_header):
        index = read_header("enum Flags { A = 1 << 3, B };").index
        assert [c.value for c in index.enums[0].constants] == [8, 9]

    def test_negative_value(self, read_header):
        index = read_header("enum Result { FAILED = -1, OK };").index
        assert [c.value for c in index.enums[0].constants] == [-1, 0]

    def test_unsupported_initializer_skipped(self, read_header, capsys):
        index = read_header("enum E { A = 1, B = sizeof(int), C };").index
        assert [(c.name.raw, c.value) for c in index.enums[0].constants] == [("A", 1), ("C", 2)]
        assert 'Warning: Could not process value of enum constant "B"' in capsys.readouterr().err

    def test_oversized_shift_skipped(self, read_header, capsys):
        index = read_header("enum E { A = 1 << 99999999999999999, B = 2 };").index
        assert [(c.name.raw, c.value) for c in index.enums[0].constants] == [("B", 2)]
        assert 'Warning: Could not process value of enum constant "A"' in capsys.readouterr().err

    def test_tagged_constant_comments(self, read_header):
        code = """
/**
 * Colors.
 * @RED: the red one
 */
enum Color { RED, GREEN };
"""
        enum = read_header(code).index.enums[0]
        assert clean_description(enum.description) == ["Colors."]
        assert enum.constants[0].description == ["the red one"]
        assert enum.constants[1].description == []

    def test_inline_constant_comment(self, read_header):
        code = """
enum Mode {
    /** Fast mode. */
    FAST,
    SLOW
};
"""
        enum = read_header(code).index.enums[0]
        assert enum.constants[0].description == ["Fast mode."]
        assert enum.constants[1].description == []

    def test_typedef_names_anonymous_enum(self, read_header):
        index = read_header("typedef enum { ONE, TWO } Number;").index
        (enum,) = index.enums
        assert enum.name.raw == "Number"

    def test_enum_type_resolves_to_entity(self, read_header):
        index = read_header("enum Color { RED }; void paint(enum Color color);").index
        (function,) = index.functions
        assert function.parameters[0].type is index.enums[0]


class TestStructs:
    def test_field_order(self, read_header):
        index = read_header("struct Point { int x; int y; };").index
        (struct,) = index.structs
        assert struct.name.raw == "Point"
        assert not struct.is_union
        assert [f.name.raw for f in struct.fields] == ["x", "y"]
        assert all(f.type == PrimitiveType("int") for f in struct.fields)

    def test_union(self, read_header):
        index = read_header("union Value { int i; double d; };").index
        (union,) = index.structs
        assert union.is_union
        assert [f.type for f in union.fields] == [PrimitiveType("int"), PrimitiveType("double")]

    def test_struct_comment(self, read_header):
        index = read_header("/** A point. */\nstruct Point { int x; };").index
        assert index.structs[0].description == ["A point."]

    def test_typedef_comment_on_anonymous_struct(self, read_header):
        index = read_header("/** A point. */\ntypedef struct { int x; } Point;").index
        (struct,) = index.structs
        assert struct.name.raw == "Point"

    def test_trailing_field_comment(self, read_header):
        code = """
struct S {
    int a; // trailing text
    int b;
};
"""
        struct = read_header(code).index.structs[0]
        assert struct.fields[0].description == ["trailing text"]
        assert struct.fields[1].description == []

    def test_leading_field_comment(self, read_header):
        code = """
struct S {
    /** The a. */
    int a;
    int b; /**< The b. */
};
"""
        struct = read_header(code).index.structs[0]
        assert struct.fields[0].description == ["The a."]
        assert struct.fields[1].description == ["The b."]

    def test_nested_anonymous_struct_named_by_field(self, read_header):
        code = "struct EnclosingStruct { struct { int a; } fieldName; };"
        index = read_header(code).index
        enclosing = index.find("EnclosingStruct")
        field = enclosing.fields[0]
        assert isinstance(field.type, ByValueType)
        nested = field.type.inner
        assert nested in index.structs
        assert nested.name.format("camelcase") == "EnclosingStructFieldName"
        assert [f.name.raw for f in nested.fields] == ["a"]

    def test_nested_anonymous_enum_named_by_field(self, read_header):
        code = "struct Shape { enum { CIRCLE, SQUARE } kind; };"
        index = read_header(code).index
        (enum,) = index.enums
        assert enum.name.format("camelcase") == "ShapeKind"
        assert index.structs[0].fields[0].type is enum

    def test_forward_reference_identity(self, read_header):
        code = """
struct Node;
struct List { struct Node* head; };
struct Node { int value; struct Node* next; };
"""
        index = read_header(code).index
        node = index.find("Node")
        list_ = index.find("List")
        assert list_.fields[0].type is node
        assert [f.name.raw for f in node.fields] == ["value", "next"]
        assert node.fields[1].type is node
        assert len(index.structs) == 2

    def test_pointer_before_declaration(self, read_header):
        code = """
struct Owner { struct Later* later; };
struct Later { int x; };
"""
        index = read_header(code).index
        later = index.find("Later")
        assert index.find("Owner").fields[0].type is later
        assert [f.name.raw for f in later.fields] == ["x"]

    def test_unknown_record_by_value(self, tmp_path, read_header):
        (tmp_path / "other.h").write_text("struct Hidden { int x; };\n")
        code = '#include "other.h"\nstruct Outer { struct Hidden hidden; };'
        index = read_header(code, include_dirs=[str(tmp_path)]).index
        assert index.find("Outer").fields[0].type == UnknownType()
        assert index.find("Hidden") is None

    def test_constant_array(self, read_header):
        field = read_header("struct Buf { int data[16]; };").index.structs[0].fields[0]
        assert isinstance(field.type, ConstantArrayType)
        assert field.type.element_type == PrimitiveType("int")
        assert field.type.size == 16

    def test_flexible_array_member(self, read_header):
        (struct,) = read_header("struct Buf { int size; int data[]; };").index.structs
        assert [f.name.raw for f in struct.fields] == ["size", "data"]
        data = struct.fields[1].type
        assert isinstance(data, ConstantArrayType)
        assert data.element_type == PrimitiveType("int")
        assert data.size == 0


class TestFunctions:
    def test_parameters(self, read_header):
        index = read_header("int add(int a, int b);").index
        (function,) = index.functions
        assert function.name.raw == "add"
        assert function.return_type == PrimitiveType("int")
        assert [p.name.raw for p in function.parameters] == ["a", "b"]
        assert not function.is_callback
        assert not function.is_blocking

    def test_unnamed_parameter_uses_type_name(self, read_header):
        function = read_header("void take(unsigned int);").index.functions[0]
        assert function.parameters[0].name.parts == ("uint",)

    def test_string(self, read_header):
        function = read_header("const char* version(void);").index.functions[0]
        assert function.return_type == StringType()

    def test_pointer_depth(self, read_header):
        function = read_header("void fill(int** out);").index.functions[0]
        pointer = function.parameters[0].type
        assert isinstance(pointer, PointerType)
        assert pointer.pointee_name.parts == ("int",)
        assert pointer.depth == 2

    def test_pointer_to_typedef(self, read_header):
        function = read_header("typedef int Handle; void open_handle(Handle* out);").index.functions[0]
        pointer = function.parameters[0].type
        assert pointer == PointerType(Name.tokenize("Handle"), 1)

    def test_void_pointer(self, read_header):
        function = read_header("void release(void* data);").index.functions[0]
        assert function.parameters[0].type == PointerType(Name.tokenize("Void"), 1)

    def test_array_parameter(self, read_header):
        function = read_header("void sum(int values[], int count);").index.functions[0]
        assert [p.is_array for p in function.parameters] == [True, False]
        assert function.parameters[0].type == PointerType(Name.tokenize("Int"), 1)

    def test_char_array_parameter_is_string(self, read_header):
        function = read_header("int checksum(const char data[]);").index.functions[0]
        assert function.parameters[0].type == StringType()
        assert function.parameters[0].is_array

    def test_struct_array_parameter(self, read_header):
        index = read_header("struct Point { int x; };\nvoid draw(struct Point points[], int count);").index
        assert index.functions[0].parameters[0].type is index.find("Point")

    def test_variable_length_array_parameter(self, read_header):
        function = read_header("void fill(int count, int values[count]);").index.functions[0]
        assert function.parameters[1].type == PointerType(Name.tokenize("Int"), 1)
        assert function.parameters[1].is_array

    def test_struct_by_value(self, read_header):
        index = read_header("struct Point { int x; }; struct Point origin(void);").index
        (function,) = index.functions
        assert isinstance(function.return_type, ByValueType)
        assert function.return_type.inner is index.structs[0]

    def test_documented_parameters(self, read_header):
        code = """
/**
 * Adds numbers.
 * \\param a first value
 * \\param b second value
 * \\returns the sum
 */
int add(int a, int b);
"""
        function = read_header(code).index.functions[0]
        assert clean_description(function.function_description) == ["Adds numbers."]
        assert function.parameters[0].description == ["first value"]
        assert clean_description(function.parameters[1].description) == ["second value"]
        assert clean_description(function.return_value_description) == ["the sum"]

    def test_positional_parameter_descriptions(self, read_header):
        code = """
/**
 * \\param first the x
 * \\param second the y
 */
int sub(int a, int b);
"""
        function = read_header(code).index.functions[0]
        assert function.parameters[0].description == ["the x"]
        assert clean_description(function.parameters[1].description) == ["the y"]

    def test_blocking(self, read_header):
        index = read_header("void wait_forever(void); void poll(void);", blocking={"wait_forever"}).index
        assert {f.name.raw: f.is_blocking for f in index.functions} == {"wait_forever": True, "poll": False}

    def test_redeclaration_keeps_first(self, read_header):
        index = read_header("int f(int a);\nint f(int b);").index
        (function,) = index.functions
        assert function.parameters[0].name.raw == "a"

    def test_prefix_stripped(self, read_header):
        function = read_header("void cef_task_post(void);", prefixes=("cef_",)).index.functions[0]
        assert function.name.parts == ("task", "post")
        assert function.name.raw == "cef_task_post"

    def test_unsupported_type(self, read_header):
        with pytest.raises(UnsupportedTypeError, match="LongDouble") as excinfo:
            read_header("long double precise(void);")
        assert "precise" in str(excinfo.value)

    def test_comment_after_export_macro(self, read_header):
        code = """
#define API
/** Starts things. */
API void start(void);
"""
        function = read_header(code).index.functions[0]
        assert function.function_description == ["Starts things."]


class TestMethods:
    code = """
typedef struct Widget { int x; } Widget;
Widget* WidgetCreate(Widget* parent);
void WidgetDestroy(Widget** widget);
void DoSomethingUnrelated(Widget* w);
int WidgetCount(void);
"""

    def test_grouping(self, read_header):
        index = read_header(self.code).index
        widget = index.find("Widget")
        assert isinstance(widget, StructOrUnion)
        assert [m.name.parts for m in widget.methods] == [("create",), ("destroy",)]
        assert widget.methods[0].function is index.find("WidgetCreate")

    def test_functions_stay_free(self, read_header):
        index = read_header(self.code).index
        assert [f.name.raw for f in index.functions] == [
            "WidgetCreate",
            "WidgetDestroy",
            "DoSomethingUnrelated",
            "WidgetCount",
        ]

    def test_returned_pointer_is_struct(self, read_header):
        index = read_header(self.code).index
        assert index.find("WidgetCreate").return_type is index.find("Widget")

    def test_method_name(self):
        widget = Name.tokenize("Widget")
        assert method_name(widget, Name.tokenize("WidgetCreate")) == Name(("create",))
        assert method_name(widget, Name.tokenize("widget_set_size")) == Name(("set", "size"))
        assert method_name(widget, Name.tokenize("Widget")) is None
        assert method_name(widget, Name.tokenize("WidgetsCount")) is None
        assert method_name(Name(), Name.tokenize("Create")) is None

    def test_method_name_multi_part_struct(self):
        assert method_name(Name.tokenize("TextBuffer"), Name.tokenize("TextBufferClear")) == Name(("clear",))


class TestCallbacks:
    def test_callback_typedef(self, read_header):
        code = """
typedef int (*Callback)(void* user_data, int code);
void set_callback(Callback cb);
"""
        index = read_header(code).index
        (callback,) = index.callbacks
        assert isinstance(callback, FunctionOrCallback)
        assert callback.is_callback
        assert callback.name.raw == "Callback"
        assert callback.return_type == PrimitiveType("int")
        assert [p.name.raw for p in callback.parameters] == ["user_data", "code"]
        assert callback.parameters[0].type == PointerType(Name.tokenize("Void"), 1)
        assert index.functions[0].parameters[0].type is callback

    def test_void_callback(self, read_header):
        callback = read_header("typedef void (*Done)(void);").index.callbacks[0]
        assert callback.return_type == PrimitiveType("void")
        assert callback.parameters == []

    def test_callback_description(self, read_header):
        code = "/** Called when done. */\ntypedef void (*Done)(int status);"
        callback = read_header(code).index.callbacks[0]
        assert callback.function_description == ["Called when done."]

    def test_callback_field(self, read_header):
        code = """
typedef void (*Handler)(int event);
struct Listener { Handler on_event; };
"""
        index = read_header(code).index
        assert index.structs[0].fields[0].type is index.callbacks[0]


class TestMacros:
    def test_integer(self, read_header):
        index = read_header("#define MAX_SIZE 64").index
        (constant,) = index.constants
        assert constant.name.raw == "MAX_SIZE"
        assert constant.value == 64

    def test_expressions(self, read_header):
        code = "#define MASK (1 << 4)\n#define HEX 0x10u\n#define PI 3.5\n#define NEG -2"
        index = read_header(code).index
        assert {c.name.raw: c.value for c in index.constants} == {"MASK": 16, "HEX": 16, "PI": 3.5, "NEG": -2}

    def test_first_definition_wins(self, read_header):
        index = read_header("#define FOO 1\n#define FOO 2").index
        (constant,) = index.constants
        assert constant.value == 1

    def test_unsupported_value(self, read_header, capsys):
        index = read_header("#define FOO (some_identifier)\nint after(void);").index
        assert index.constants == []
        assert [f.name.raw for f in index.functions] == ["after"]
        assert 'Warning: Could not process value of macro "FOO"' in capsys.readouterr().err

    def test_function_like_and_empty_skipped(self, read_header, capsys):
        index = read_header("#define SQR(x) ((x) * (x))\n#define GUARD_H").index
        assert index.constants == []
        assert "Warning" not in capsys.readouterr().err

    def test_parenthesized_value_is_object_like(self, read_header):
        index = read_header("#define WIDTH (4)\n#define SQR(x) ((x) * (x))").index
        assert [(c.name.raw, c.value) for c in index.constants] == [("WIDTH", 4)]

    def test_unsupported_value_keeps_later_macros(self, read_header, capsys):
        index = read_header("#define FOO (some_identifier)\n#define BAR 1\nint f(void);").index
        assert [(c.name.raw, c.value) for c in index.constants] == [("BAR", 1)]
        assert 'Warning: Could not process value of macro "FOO"' in capsys.readouterr().err


class TestVisibility:
    def test_included_file_hidden(self, tmp_path, read_header):
        (tmp_path / "other.h").write_text("int hidden(void);\n")
        index = read_header('#include "other.h"\nint shown(void);', include_dirs=[str(tmp_path)]).index
        assert [f.name.raw for f in index.functions] == ["shown"]

    def test_included_file_matched_by_regex(self, tmp_path, read_header):
        (tmp_path / "other.h").write_text("int hidden(void);\n")
        result = read_header(
            '#include "other.h"\nint shown(void);',
            include_dirs=[str(tmp_path)],
            headers=("test.h", re.compile(r"other\.h$")),
        )
        assert [f.name.raw for f in result.index.functions] == ["hidden", "shown"]
        assert len(result.visible_files) == 2

    def test_pointer_to_hidden_record(self, tmp_path, read_header):
        (tmp_path / "other.h").write_text("struct Hidden;\n")
        code = '#include "other.h"\nvoid use(struct Hidden* hidden);'
        index = read_header(code, include_dirs=[str(tmp_path)]).index
        assert index.structs == []
        assert index.functions[0].parameters[0].type == PointerType(Name.tokenize("Hidden"), 1)

    def test_declaration_kinds_mixed(self, read_header):
        code = """
#define VERSION 3
enum Level { LOW, HIGH };
struct Config { enum Level level; };
typedef void (*Notify)(struct Config* config);
void configure(struct Config* config, Notify notify);
"""
        index = read_header(code).index
        assert [type(d) for d in index] == [
            Constant,
            Enum,
            StructOrUnion,
            FunctionOrCallback,
            FunctionOrCallback,
        ]


class TestDeclarationKeys:
    def setup_method(self):
        self.code = "struct A;\nstruct A { int x; };\nstruct B { int x; };\nint f(void);\nint g(void);\n"

    def _cursors(self, backend):
        tu = backend._get_index().parse("keys.h", unsaved_files=[("keys.h", self.code)])
        return [c for c in tu.cursor.get_children() if c.location.file and c.location.file.name == "keys.h"]

    def test_redeclarations_share_key(self, backend):
        forward, definition, _, _, _ = self._cursors(backend)
        assert declaration_key(forward) == declaration_key(definition)

    def test_distinct_declarations_never_share_key(self, backend):
        _, a, b, f, g = self._cursors(backend)
        assert declaration_key(a) != declaration_key(b)
        assert declaration_key(f) != declaration_key(g)

    def test_key_holds_canonical_cursor(self, backend):
        forward, definition, _, _, _ = self._cursors(backend)
        tag, cursor = declaration_key(definition)
        assert tag == "type"
        assert cursor == forward.canonical
