"""
Type representations for the Hindley-Milner type system
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple


class Type(ABC):
    """Base class for all types"""

    @abstractmethod
    def free_vars(self) -> Set[str]:
        """Return the set of free type variables in this type"""
        pass

    @abstractmethod
    def substitute(self, subst: Dict[str, "Type"]) -> "Type":
        """Apply a substitution to this type"""
        pass

    def __str__(self) -> str:
        return type_to_str(self)


@dataclass(frozen=True)
class TypeVar(Type):
    """Type variable (e.g., 'a, 'b)"""

    name: str

    def free_vars(self) -> Set[str]:
        return {self.name}

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return subst.get(self.name, self)


@dataclass(frozen=True)
class TypeCon(Type):
    """Type constructor applied to its arguments (e.g., int, 'a list, (int, string) result)"""

    name: str
    args: Tuple[Type, ...] = ()

    def free_vars(self) -> Set[str]:
        result: Set[str] = set()
        for arg in self.args:
            result |= arg.free_vars()
        return result

    def substitute(self, subst: Dict[str, Type]) -> Type:
        if not self.args:
            return self
        return TypeCon(self.name, tuple(arg.substitute(subst) for arg in self.args))


@dataclass(frozen=True)
class FunctionType(Type):
    """Function type (e.g., int -> string, 'a -> 'b -> 'c)"""

    param: Type
    result: Type

    def free_vars(self) -> Set[str]:
        return self.param.free_vars() | self.result.free_vars()

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return FunctionType(self.param.substitute(subst), self.result.substitute(subst))


@dataclass(frozen=True)
class TupleType(Type):
    """Tuple type (e.g., int * string)"""

    element_types: Tuple[Type, ...]

    def free_vars(self) -> Set[str]:
        result: Set[str] = set()
        for elem in self.element_types:
            result |= elem.free_vars()
        return result

    def substitute(self, subst: Dict[str, Type]) -> Type:
        return TupleType(tuple(elem.substitute(subst) for elem in self.element_types))


# Built-in types
INT_TYPE = TypeCon("int")
FLOAT_TYPE = TypeCon("float")
STRING_TYPE = TypeCon("string")
BOOL_TYPE = TypeCon("bool")
UNIT_TYPE = TypeCon("unit")

LIST_TYPE_NAME = "list"


def list_type(element: Type) -> TypeCon:
    return TypeCon(LIST_TYPE_NAME, (element,))


def function_type(params: List[Type], result: Type) -> Type:
    """Build the curried function type params[0] -> ... -> result"""
    for param in reversed(params):
        result = FunctionType(param, result)
    return result


class TypeSubstitution:
    """Represents a type substitution (mapping from type variables to types)"""

    def __init__(self, mapping: Optional[Dict[str, Type]] = None):
        self.mapping = mapping or {}

    def apply(self, t: Type) -> Type:
        """Apply this substitution to a type"""
        return t.substitute(self.mapping)

    def compose(self, other: "TypeSubstitution") -> "TypeSubstitution":
        """Compose two substitutions: (self ∘ other), i.e. apply other first"""
        new_mapping = {}

        for var, typ in other.mapping.items():
            new_mapping[var] = self.apply(typ)

        for var, typ in self.mapping.items():
            if var not in new_mapping:
                new_mapping[var] = typ

        return TypeSubstitution(new_mapping)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeSubstitution):
            return NotImplemented
        return self.mapping == other.mapping

    def __repr__(self) -> str:
        return f"TypeSubstitution({self.mapping!r})"

    def __str__(self) -> str:
        if not self.mapping:
            return "∅"
        items = [f"'{var} ↦ {typ}" for var, typ in self.mapping.items()]
        return "{" + ", ".join(items) + "}"


class TypeScheme:
    """Polymorphic type scheme (∀ a₁ a₂ ... aₙ . τ)"""

    def __init__(self, quantified_vars: Set[str], type_: Type):
        self.quantified_vars = quantified_vars
        self.type = type_

    def free_vars(self) -> Set[str]:
        """Free variables are those in the type minus the quantified ones"""
        return self.type.free_vars() - self.quantified_vars

    def substitute(self, subst: TypeSubstitution) -> "TypeScheme":
        """Apply substitution, being careful not to substitute quantified variables"""
        filtered_mapping = {
            var: typ
            for var, typ in subst.mapping.items()
            if var not in self.quantified_vars
        }
        return TypeScheme(
            self.quantified_vars,
            TypeSubstitution(filtered_mapping).apply(self.type),
        )

    def instantiate(self, fresh_var_gen: "FreshVarGenerator") -> Type:
        """Create a fresh instance of this type scheme by replacing quantified variables"""
        if not self.quantified_vars:
            return self.type

        subst_mapping: Dict[str, Type] = {}
        for var in sorted(self.quantified_vars):
            subst_mapping[var] = TypeVar(fresh_var_gen.fresh())

        return TypeSubstitution(subst_mapping).apply(self.type)

    def __repr__(self) -> str:
        return f"TypeScheme({self.quantified_vars!r}, {self.type!r})"

    def __str__(self) -> str:
        return str(normalize_type(self.type))


class FreshVarGenerator:
    """Generates fresh type variables"""

    def __init__(self):
        self.counter = 0

    def fresh(self) -> str:
        """Generate a fresh type variable name"""
        name = f"t{self.counter}"
        self.counter += 1
        return name


def generalize(type_env_free_vars: Set[str], typ: Type) -> TypeScheme:
    """Generalize a type by quantifying over variables not free in the environment"""
    quantified = typ.free_vars() - type_env_free_vars
    return TypeScheme(quantified, typ)


def _ordered_vars(typ: Type, seen: List[str]) -> None:
    match typ:
        case TypeVar(name=name):
            if name not in seen:
                seen.append(name)
        case TypeCon(args=args):
            for arg in args:
                _ordered_vars(arg, seen)
        case FunctionType(param=param, result=result):
            _ordered_vars(param, seen)
            _ordered_vars(result, seen)
        case TupleType(element_types=element_types):
            for elem in element_types:
                _ordered_vars(elem, seen)


def _letter_name(index: int) -> str:
    letter = chr(ord("a") + index % 26)
    suffix = index // 26
    return letter if suffix == 0 else f"{letter}{suffix}"


def normalize_type(typ: Type) -> Type:
    """Rename type variables to a, b, c, ... in order of first appearance"""
    names: List[str] = []
    _ordered_vars(typ, names)
    mapping: Dict[str, Type] = {
        name: TypeVar(_letter_name(index)) for index, name in enumerate(names)
    }
    return typ.substitute(mapping)


# Printing precedence: arrows bind loosest, then tuples, then applications
_ARROW, _TUPLE, _APP = 0, 1, 2


def type_to_str(typ: Type, level: int = _ARROW) -> str:
    """Render a type using OCaml syntax"""
    match typ:
        case TypeVar(name=name):
            return f"'{name}"
        case TypeCon(name=name, args=()):
            return name
        case TypeCon(name=name, args=(arg,)):
            return f"{type_to_str(arg, _APP)} {name}"
        case TypeCon(name=name, args=args):
            inner = ", ".join(type_to_str(arg) for arg in args)
            return f"({inner}) {name}"
        case FunctionType(param=param, result=result):
            text = f"{type_to_str(param, _TUPLE)} -> {type_to_str(result, _ARROW)}"
            return f"({text})" if level > _ARROW else text
        case TupleType(element_types=element_types):
            text = " * ".join(type_to_str(elem, _APP) for elem in element_types)
            return f"({text})" if level > _TUPLE else text
        case _:
            raise TypeError(f"Unknown type: {typ!r}")


@dataclass
class ConstructorInfo:
    """A variant constructor registered by a type declaration"""

    name: str
    type_name: str
    type_params: List[str]
    argument: Optional[Type]
    tag: int


def type_declaration_to_str(
    type_name: str,
    type_params: Sequence[str],
    constructors: Sequence[ConstructorInfo] = (),
    alias: Optional[Type] = None,
) -> str:
    """Render a type declaration, e.g. `type 'a option = None | Some of 'a`"""
    header = type_to_str(TypeCon(type_name, tuple(TypeVar(p) for p in type_params)))
    if alias is not None:
        return f"type {header} = {type_to_str(alias)}"
    variants = []
    for info in constructors:
        if info.argument is None:
            variants.append(info.name)
        else:
            variants.append(f"{info.name} of {type_to_str(info.argument, _TUPLE)}")
    return f"type {header} = {' | '.join(variants)}"
